"""
Configuration file for the Assembly Animator backend.
Contains environment-driven settings and the animation prompt template.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# --- Constants ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./assembly.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "120"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
RECONCILE_INTERVAL_SECONDS = float(os.getenv("RECONCILE_INTERVAL_SECONDS", "30"))

DEFAULT_VEO_MODEL = "veo-3.1-generate-preview"
DEFAULT_VIDEO_CONFIG = {
    "number_of_videos": 1,
    "duration_seconds": 6,
    "aspect_ratio": "16:9",
    "resolution": "720p",
}

ILLUSTRATION_PREFIX = "plan-illustrations"
ANIMATION_PREFIX = "plan-animations"

API_KEY_ENV_VARS = ("GOOGLE_API_KEY", "GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY")


@dataclass(frozen=True)
class VeoSettings:
    api_key: Optional[str]
    model: str = DEFAULT_VEO_MODEL
    download_timeout: float = HTTP_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "VeoSettings":
        api_key = next((os.getenv(name) for name in API_KEY_ENV_VARS if os.getenv(name)), None)
        return cls(
            api_key=api_key,
            model=os.getenv("GOOGLE_VEO_MODEL", DEFAULT_VEO_MODEL),
            download_timeout=HTTP_TIMEOUT_SECONDS,
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise RuntimeError(
                "Set GOOGLE_API_KEY, GEMINI_API_KEY, or GOOGLE_GENERATIVE_AI_API_KEY to use Veo video generation."
            )
        return self.api_key


@dataclass(frozen=True)
class StorageSettings:
    bucket: Optional[str]
    endpoint: Optional[str]
    access_key: Optional[str]
    secret_key: Optional[str]
    public_url: Optional[str] = None
    region: str = "us-east-1"
    signed_url_ttl: int = 3600
    download_timeout: float = HTTP_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "StorageSettings":
        endpoint = os.getenv("STORAGE_URL")
        return cls(
            bucket=os.getenv("STORAGE_BUCKET"),
            endpoint=endpoint,
            access_key=os.getenv("STORAGE_ACCESS_KEY"),
            secret_key=os.getenv("STORAGE_SECRET_KEY"),
            public_url=os.getenv("STORAGE_PUBLIC_URL") or endpoint,
            region=os.getenv("STORAGE_REGION", "us-east-1"),
            signed_url_ttl=int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600")),
            download_timeout=HTTP_TIMEOUT_SECONDS,
        )

    def validate(self) -> None:
        if not self.bucket:
            raise RuntimeError("STORAGE_BUCKET must be set to upload files.")
        if not self.endpoint:
            raise RuntimeError("STORAGE_URL must be set to upload files.")
        if not (self.access_key and self.secret_key):
            raise RuntimeError("STORAGE_ACCESS_KEY and STORAGE_SECRET_KEY must be set to upload files.")


# --- Prompt Engineering Section ---

ANIMATION_PROMPT_HEADER = (
    "Animate this black-and-white IKEA-style assembly illustration as a short, "
    "clean instructional clip. Keep the axonometric line-art look, a plain white "
    "background, and a steady camera. Show only the motion described for this step."
)


def build_animation_prompt(
    title: str,
    description: str,
    notes: Optional[str],
    index: int,
    total_steps: int,
    request_summary: str,
    has_reference: bool,
) -> str:
    """Assemble the Veo prompt for one plan step."""
    parts: List[str] = [
        ANIMATION_PROMPT_HEADER,
        f"Overall project: {request_summary}",
        f"Current step ({index + 1}/{total_steps}): {title}",
        f"Step details: {description}",
    ]
    if notes:
        parts.append(f"Additional notes: {notes}")
    parts.append(
        "Match the parts shown in the provided image."
        if has_reference
        else "No reference image provided."
    )
    return "\n\n".join(parts)
