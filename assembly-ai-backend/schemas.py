"""
Pydantic models for data validation in the Assembly Animator backend.
Request and response bodies use camelCase field names.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Animations ---

class VideoConfig(CamelModel):
    """Tunable Veo settings a caller may override."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    number_of_videos: Optional[int] = Field(default=None, ge=1, le=4)
    duration_seconds: Optional[int] = Field(default=None, ge=1, le=8)
    aspect_ratio: Optional[Literal["16:9", "9:16"]] = None
    resolution: Optional[Literal["720p", "1080p"]] = None
    person_generation: Optional[Literal["dont_allow", "allow_adult"]] = None
    negative_prompt: Optional[str] = None
    enhance_prompt: Optional[bool] = None
    generate_audio: Optional[bool] = None


class StartAnimationRequest(CamelModel):
    prompt: StrictStr
    image: Optional[str] = None
    config: Optional[VideoConfig] = None

    @field_validator("prompt")
    @classmethod
    def prompt_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt cannot be empty.")
        return value


class StartAnimationResponse(CamelModel):
    operation_id: str


class AnimationStatusRequest(CamelModel):
    operation_id: StrictStr

    @field_validator("operation_id")
    @classmethod
    def operation_id_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("operationId cannot be empty.")
        return value


class AnimationStatusResponse(CamelModel):
    operation_id: str
    status: Literal["processing", "succeeded", "failed"]
    animation_url: Optional[str] = None
    animation_error: Optional[str] = None


class RegenerateRequest(CamelModel):
    step_id: StrictInt

    @field_validator("step_id")
    @classmethod
    def step_id_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("stepId must be greater than zero.")
        return value


class RegenerateResponse(CamelModel):
    operation_id: str
    status: Literal["processing"] = "processing"


# --- Plans ---

class PlanStepIn(CamelModel):
    id: Optional[str] = None
    title: str
    description: str
    notes: Optional[str] = None
    illustration: Optional[str] = None  # image data URL
    illustration_url: Optional[str] = None


class CreatePlanRequest(CamelModel):
    request_summary: str = Field(default="", validate_default=True)
    project: Optional[str] = None
    checklist: List[str] = Field(default_factory=list)
    reference_key: Optional[str] = None
    reference_url: Optional[str] = None
    steps: List[PlanStepIn] = Field(default_factory=list)
    animate_first_step: bool = False

    @field_validator("request_summary")
    @classmethod
    def summary_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Provide a description of what you would like to assemble.")
        return value


class PlanStepOut(CamelModel):
    database_id: int
    id: str
    position: int
    title: str
    description: str
    notes: Optional[str] = None
    illustration_url: Optional[str] = None
    animation_status: Optional[str] = None
    animation_operation_id: Optional[str] = None
    animation_url: Optional[str] = None
    animation_error: Optional[str] = None


class PlanDetail(CamelModel):
    id: int
    request_summary: str
    project: Optional[str] = None
    checklist: List[str] = Field(default_factory=list)
    reference_url: Optional[str] = None
    created_at: Optional[datetime] = None
    steps: List[PlanStepOut] = Field(default_factory=list)


class CreatePlanResponse(CamelModel):
    plan_id: int
    plan: PlanDetail
    animation_start_error: Optional[str] = None


class PlanSummary(CamelModel):
    id: int
    request_summary: str
    project: Optional[str] = None
    created_at: Optional[datetime] = None
    steps_count: int = 0


class PlanListResponse(CamelModel):
    plans: List[PlanSummary]


class DeletePlanRequest(CamelModel):
    id: Optional[int] = Field(default=None, validate_default=True)

    @field_validator("id", mode="before")
    @classmethod
    def id_is_integer(cls, value):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("A valid plan id is required.")
        return value
