# assembly-ai-backend/tests/test_storage.py

import pytest

import storage as storage_module
from config import StorageSettings
from conftest import PNG_BYTES, PNG_DATA_URL, FakeResponse
from storage import BlobStore, StorageError


def test_public_url_encodes_each_segment(storage):
    assert storage.public_url("/plan-animations/my clip#1.mp4") == (
        "https://cdn.test/assets/plan-animations/my%20clip%231.mp4"
    )


def test_public_url_keeps_base_path(s3):
    settings = StorageSettings(
        bucket="assets",
        endpoint="https://storage.test",
        access_key="a",
        secret_key="s",
        public_url="https://cdn.test/storage/v1/",
    )
    assert BlobStore(settings, client=s3).public_url("a.png") == "https://cdn.test/storage/v1/assets/a.png"


def test_missing_configuration_is_reported(s3):
    store = BlobStore(StorageSettings(bucket=None, endpoint="https://storage.test", access_key="a", secret_key="s"), client=s3)
    with pytest.raises(RuntimeError, match="STORAGE_BUCKET"):
        store.public_url("a.png")


def test_put_normalizes_key(storage, s3):
    stored = storage.put("/plan-illustrations/a.png", b"data", "image/png")

    assert stored.key == "plan-illustrations/a.png"
    assert stored.url == "https://cdn.test/assets/plan-illustrations/a.png"
    assert s3.objects["plan-illustrations/a.png"] == (b"data", "image/png")


def test_put_rejects_empty_key(storage):
    with pytest.raises(StorageError):
        storage.put("  ", b"data")


def test_put_wraps_client_errors(storage, s3):
    s3.put_error = RuntimeError("access denied")
    with pytest.raises(StorageError, match="access denied"):
        storage.put("a.png", b"data")


def test_get_by_key_and_data_url(storage, s3):
    s3.objects["plan-illustrations/a.png"] = (PNG_BYTES, "image/png")
    assert storage.get_data_url(key="plan-illustrations/a.png") == PNG_DATA_URL


def test_get_by_url(storage, monkeypatch):
    monkeypatch.setattr(
        storage_module.requests,
        "get",
        lambda url, timeout=None: FakeResponse(200, PNG_BYTES, {"content-type": "image/png"}),
    )
    downloaded = storage.get(url="https://elsewhere.test/a.png")
    assert downloaded.data == PNG_BYTES
    assert downloaded.content_type == "image/png"


def test_get_by_url_bad_status(storage, monkeypatch):
    monkeypatch.setattr(storage_module.requests, "get", lambda url, timeout=None: FakeResponse(404))
    with pytest.raises(StorageError, match="Status: 404"):
        storage.get(url="https://elsewhere.test/a.png")


def test_get_requires_key_or_url(storage):
    with pytest.raises(StorageError, match="Either key or url"):
        storage.get()


def test_display_url_prefers_signed_url(storage, s3):
    assert storage.display_url("a.mp4", "https://cdn.test/a.mp4").startswith("https://signed.test/assets/a.mp4")
    s3.sign_error = RuntimeError("no credentials")
    assert storage.display_url("a.mp4", "https://cdn.test/a.mp4") == "https://cdn.test/a.mp4"
    assert storage.display_url(None, "https://cdn.test/a.mp4") == "https://cdn.test/a.mp4"


def test_upload_video_uses_fresh_key(storage, s3):
    first = storage.upload_video(b"one", "video/mp4")
    second = storage.upload_video(b"two", "video/mp4")

    assert first.key != second.key
    assert first.key.startswith("plan-animations/") and first.key.endswith(".mp4")
    assert first.signed_url.startswith("https://signed.test/")


def test_upload_video_survives_signing_failure(storage, s3):
    s3.sign_error = RuntimeError("no credentials")
    stored = storage.upload_video(b"one", None)
    assert stored.signed_url is None
    assert stored.url.startswith("https://cdn.test/assets/plan-animations/")


def test_upload_data_url_image(storage, s3):
    stored = storage.upload_data_url_image(PNG_DATA_URL)
    assert stored.key.startswith("plan-illustrations/") and stored.key.endswith(".png")
    assert s3.objects[stored.key] == (PNG_BYTES, "image/png")

    with pytest.raises(StorageError, match="Invalid image data URL."):
        storage.upload_data_url_image("data:text/plain;base64,aGk=")
