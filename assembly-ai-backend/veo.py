"""
Veo video generation client.

Submits image-to-video jobs through the google-genai SDK, polls long-running
operations and turns them into a small status object the orchestrator can act on.
"""

import base64
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests
from google import genai
from google.genai import types

from config import DEFAULT_VIDEO_CONFIG, VeoSettings

logger = logging.getLogger(__name__)

DATA_URL_REGEX = re.compile(
    r"^data:(?P<mime>[a-z0-9!#$&^_.+-]+/[a-z0-9!#$&^_.+-]+);base64,(?P<data>[a-zA-Z0-9+/=]+)$",
    re.IGNORECASE,
)

# Tunables a caller may override; anything else is dropped.
ALLOWED_CONFIG_KEYS = (
    "number_of_videos",
    "duration_seconds",
    "aspect_ratio",
    "resolution",
    "person_generation",
    "negative_prompt",
    "enhance_prompt",
    "generate_audio",
)

GENERIC_FAILURE = "Veo video generation failed."
EMPTY_OUTPUT_FAILURE = "Veo completed without returning any video output."


class VeoError(Exception):
    """Raised when Veo cannot be reached or returns something unusable."""


@dataclass(frozen=True)
class VideoOutput:
    mime_type: str = "video/mp4"
    video_bytes: Optional[bytes] = None
    uri: Optional[str] = None


@dataclass(frozen=True)
class OperationStatus:
    status: str  # pending | processing | succeeded | failed
    operation_id: str
    videos: List[VideoOutput] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.status in ("pending", "processing")


def parse_data_url(data_url: str):
    match = DATA_URL_REGEX.match(data_url.strip())
    if not match:
        raise VeoError("Provided image must be a base64-encoded data URL.")
    return match.group("mime"), match.group("data")


def sanitize_config(config: Optional[dict]) -> dict:
    if not config:
        return {}
    return {key: value for key, value in config.items() if key in ALLOWED_CONFIG_KEYS and value is not None}


def _get(obj: Any, name: str):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _error_message(error: Any) -> str:
    message = _get(error, "message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return GENERIC_FAILURE


def _decode_bytes(value: Any) -> Optional[bytes]:
    if not value:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return base64.b64decode(value)


def extract_videos(response: Any) -> List[VideoOutput]:
    videos = []
    for generated in _get(response, "generated_videos") or []:
        video = _get(generated, "video")
        if video is None:
            continue
        video_bytes = _decode_bytes(_get(video, "video_bytes"))
        uri = _get(video, "uri")
        if not (video_bytes or uri):
            continue
        videos.append(
            VideoOutput(
                mime_type=_get(video, "mime_type") or "video/mp4",
                video_bytes=video_bytes,
                uri=uri,
            )
        )
    return videos


def resolve_operation_status(operation: Any) -> OperationStatus:
    """Interpret a polled operation.

    Not done: "processing" once the job reports metadata, "pending" before that.
    Done with an error: "failed" with the reported message.
    Done without any usable video: "failed" as well, there is nothing to retry against.
    """
    operation_id = _get(operation, "name") or ""

    if not _get(operation, "done"):
        return OperationStatus(
            status="processing" if _get(operation, "metadata") else "pending",
            operation_id=operation_id,
        )

    error = _get(operation, "error")
    if error:
        return OperationStatus(status="failed", operation_id=operation_id, error=_error_message(error))

    videos = extract_videos(_get(operation, "response") or _get(operation, "result"))
    if not videos:
        return OperationStatus(status="failed", operation_id=operation_id, error=EMPTY_OUTPUT_FAILURE)

    return OperationStatus(status="succeeded", operation_id=operation_id, videos=videos)


class VeoClient:
    """Generation client. The SDK client is created on first use."""

    def __init__(self, settings: VeoSettings, client=None):
        self.settings = settings
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self):
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = genai.Client(api_key=self.settings.require_api_key())
        return self._client

    def start(self, prompt: str, image_data_url: Optional[str] = None, config: Optional[dict] = None) -> str:
        """Submit a generation job and return its operation id."""
        trimmed = (prompt or "").strip()
        if not trimmed:
            raise VeoError("A non-empty prompt is required to generate a video.")

        video_config = {**DEFAULT_VIDEO_CONFIG, **sanitize_config(config)}
        request = {
            "model": self.settings.model,
            "prompt": trimmed,
            "config": types.GenerateVideosConfig(**video_config),
        }
        if image_data_url:
            mime_type, data = parse_data_url(image_data_url)
            request["image"] = types.Image(image_bytes=base64.b64decode(data), mime_type=mime_type)

        logger.info(f"Submitting Veo job (model={self.settings.model}, seeded={bool(image_data_url)})")
        operation = self.client.models.generate_videos(**request)

        if not _get(operation, "name"):
            raise VeoError("Veo did not return an operation identifier.")
        return operation.name

    def get_operation(self, operation_id: str):
        trimmed = (operation_id or "").strip()
        if not trimmed:
            raise VeoError("A valid operation id is required.")
        return self.client.operations.get(types.GenerateVideosOperation(name=trimmed))

    def get_status(self, operation_id: str) -> OperationStatus:
        return resolve_operation_status(self.get_operation(operation_id))

    def download(self, video: VideoOutput):
        """Return (bytes, mime type) for a finished video.

        URIs served by the Gemini API need the API key attached.
        """
        if video.video_bytes:
            return video.video_bytes, video.mime_type or "video/mp4"

        if not video.uri:
            raise VeoError("No video data available to download.")

        try:
            response = requests.get(
                video.uri,
                params={"key": self.settings.require_api_key()},
                timeout=self.settings.download_timeout,
            )
        except requests.RequestException as e:
            raise VeoError(f"Failed to download Veo video: {e}") from e

        if not response.ok:
            raise VeoError(f"Failed to download Veo video (status {response.status_code}).")

        return response.content, response.headers.get("content-type") or "video/mp4"
