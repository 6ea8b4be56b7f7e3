"""
S3-compatible storage helpers.

Illustrations are stored under  plan-illustrations/{uuid}.{ext}
Animations are stored under     plan-animations/{uuid}.{ext}
"""

import base64
import logging
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

import boto3
import requests
from botocore.config import Config as BotoConfig

from config import ANIMATION_PREFIX, ILLUSTRATION_PREFIX, StorageSettings

logger = logging.getLogger(__name__)

IMAGE_DATA_URL_REGEX = re.compile(
    r"^data:(?P<mime>image/[a-z0-9.+-]+);base64,(?P<data>[a-zA-Z0-9+/=]+)$", re.IGNORECASE
)


class StorageError(Exception):
    """Raised when an object cannot be stored or fetched."""


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    signed_url: Optional[str] = None


@dataclass(frozen=True)
class DownloadedObject:
    data: bytes
    content_type: str

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


def _normalize_key(key: str) -> str:
    return key[1:] if key.startswith("/") else key


def _extension_for(mime_type: str, default: str) -> str:
    subtype = mime_type.split("/", 1)[1] if "/" in mime_type else ""
    subtype = subtype.split(";", 1)[0].strip()
    return subtype or default


class BlobStore:
    """Thin wrapper around a boto3 S3 client pointed at an S3-compatible endpoint."""

    def __init__(self, settings: StorageSettings, client=None):
        self.settings = settings
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self):
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self.settings.validate()
                    self._client = boto3.client(
                        "s3",
                        endpoint_url=self.settings.endpoint,
                        aws_access_key_id=self.settings.access_key,
                        aws_secret_access_key=self.settings.secret_key,
                        region_name=self.settings.region,
                        config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
                    )
        return self._client

    def public_url(self, key: str) -> str:
        """Public URL of an object: <public base>/<bucket>/<key>, each segment percent-encoded."""
        self.settings.validate()
        base = urlsplit(self.settings.public_url or self.settings.endpoint)
        segments = [self.settings.bucket] + _normalize_key(key).split("/")
        encoded = "/".join(quote(segment, safe="") for segment in segments if segment)
        base_path = base.path.rstrip("/")
        path = f"{base_path}/{encoded}" if base_path else f"/{encoded}"
        return urlunsplit((base.scheme, base.netloc, path, "", ""))

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> StoredObject:
        if not key or not key.strip():
            raise StorageError("A non-empty storage key is required.")

        normalized_key = _normalize_key(key.strip())
        params = {"Bucket": self.settings.bucket, "Key": normalized_key, "Body": data}
        if content_type:
            params["ContentType"] = content_type

        try:
            self.client.put_object(**params)
        except Exception as e:
            logger.error(f"Storage upload failed for key={normalized_key}: {e}")
            raise StorageError(f"Failed to upload object {normalized_key}: {e}") from e

        url = self.public_url(normalized_key)
        logger.info(f"Uploaded {len(data)} bytes to {normalized_key}")
        return StoredObject(key=normalized_key, url=url)

    def get(self, key: Optional[str] = None, url: Optional[str] = None) -> DownloadedObject:
        """Fetch by storage key, or by plain HTTP when only a URL is known."""
        if key:
            try:
                obj = self.client.get_object(Bucket=self.settings.bucket, Key=_normalize_key(key))
            except Exception as e:
                raise StorageError(f"Failed to download object {key}: {e}") from e
            body = obj.get("Body")
            if body is None:
                raise StorageError("Storage object is empty.")
            return DownloadedObject(
                data=body.read(),
                content_type=obj.get("ContentType") or "application/octet-stream",
            )

        if not url:
            raise StorageError("Either key or url must be provided to download object.")

        try:
            response = requests.get(url, timeout=self.settings.download_timeout)
        except requests.RequestException as e:
            raise StorageError(f"Failed to download object: {e}") from e
        if not response.ok:
            raise StorageError(
                f"Failed to download object. Status: {response.status_code} {response.reason}"
            )
        return DownloadedObject(
            data=response.content,
            content_type=response.headers.get("content-type") or "application/octet-stream",
        )

    def get_data_url(self, key: Optional[str] = None, url: Optional[str] = None) -> str:
        return self.get(key=key, url=url).to_data_url()

    def sign(self, key: str, expires_in: Optional[int] = None) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.settings.bucket, "Key": _normalize_key(key)},
                ExpiresIn=expires_in or self.settings.signed_url_ttl,
            )
        except Exception as e:
            raise StorageError(f"Failed to sign object {key}: {e}") from e

    def display_url(self, key: Optional[str], fallback_url: Optional[str]) -> Optional[str]:
        """Signed URL for key if possible, otherwise the stored URL."""
        if not key:
            return fallback_url
        try:
            return self.sign(key)
        except StorageError as e:
            logger.warning(f"Failed to create signed URL for key {key}: {e}")
            return fallback_url

    def upload_video(self, data: bytes, mime_type: Optional[str] = None) -> StoredObject:
        mime_type = mime_type or "video/mp4"
        key = f"{ANIMATION_PREFIX}/{uuid.uuid4()}.{_extension_for(mime_type, 'mp4')}"
        stored = self.put(key, data, mime_type)
        try:
            signed_url = self.sign(stored.key)
        except StorageError as e:
            logger.warning(f"Stored animation {stored.key} but could not sign it: {e}")
            signed_url = None
        return StoredObject(key=stored.key, url=stored.url, signed_url=signed_url)

    def upload_data_url_image(self, data_url: str, prefix: str = ILLUSTRATION_PREFIX) -> StoredObject:
        match = IMAGE_DATA_URL_REGEX.match(data_url.strip())
        if not match:
            raise StorageError("Invalid image data URL.")
        mime_type = match.group("mime")
        key = f"{prefix}/{uuid.uuid4()}.{_extension_for(mime_type, 'png')}"
        return self.put(key, base64.b64decode(match.group("data")), mime_type)
