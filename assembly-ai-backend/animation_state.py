"""
Animation job state for a plan step.

A step's animation is stored as four nullable columns (status, operation id,
result key/url, error). Only a handful of combinations are legal, so the
columns are read into and written from a small tagged union instead of being
touched one by one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

GENERIC_FAILURE_MESSAGE = "Veo animation failed."


class AnimationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


ACTIVE_STATUSES = (AnimationStatus.PENDING.value, AnimationStatus.PROCESSING.value)


@dataclass(frozen=True)
class Idle:
    status = AnimationStatus.NONE


@dataclass(frozen=True)
class Processing:
    operation_id: str
    status = AnimationStatus.PROCESSING

    def __post_init__(self):
        if not self.operation_id:
            raise ValueError("A processing animation needs an operation id.")


@dataclass(frozen=True)
class Succeeded:
    operation_id: str
    key: str
    url: str
    status = AnimationStatus.SUCCEEDED

    def __post_init__(self):
        if not (self.operation_id and self.key and self.url):
            raise ValueError("A succeeded animation needs an operation id, key and url.")


@dataclass(frozen=True)
class Failed:
    operation_id: str
    message: str
    status = AnimationStatus.FAILED

    def __post_init__(self):
        if not self.operation_id:
            raise ValueError("A failed animation needs an operation id.")
        if not self.message or not self.message.strip():
            raise ValueError("A failed animation needs an error message.")


AnimationState = Union[Idle, Processing, Succeeded, Failed]


def to_columns(state: AnimationState) -> dict:
    """Column values for a state, keyed by Step attribute name."""
    columns = {
        "animation_status": None,
        "animation_operation_id": None,
        "animation_key": None,
        "animation_url": None,
        "animation_error": None,
    }
    if isinstance(state, Idle):
        return columns

    columns["animation_status"] = state.status.value
    columns["animation_operation_id"] = state.operation_id
    if isinstance(state, Succeeded):
        columns["animation_key"] = state.key
        columns["animation_url"] = state.url
    elif isinstance(state, Failed):
        columns["animation_error"] = state.message.strip()
    return columns


def from_columns(
    status: Optional[str],
    operation_id: Optional[str],
    key: Optional[str] = None,
    url: Optional[str] = None,
    error: Optional[str] = None,
) -> AnimationState:
    """Read stored columns back into a state, tolerating rows written before the invariants held."""
    if not operation_id or status in (None, "", AnimationStatus.NONE.value):
        return Idle()

    if status in ACTIVE_STATUSES:
        return Processing(operation_id)

    if status == AnimationStatus.SUCCEEDED.value:
        if key and url:
            return Succeeded(operation_id, key, url)
        # Marked done without a stored artifact; poll it again.
        return Processing(operation_id)

    if status == AnimationStatus.FAILED.value:
        return Failed(operation_id, error or GENERIC_FAILURE_MESSAGE)

    raise ValueError(f"Unknown animation status: {status!r}")


def state_of(step) -> AnimationState:
    return from_columns(
        step.animation_status,
        step.animation_operation_id,
        step.animation_key,
        step.animation_url,
        step.animation_error,
    )
