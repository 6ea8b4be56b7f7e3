# assembly-ai-backend/tests/conftest.py

import base64
import os
import sys
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from animation_state import to_columns  # noqa: E402
from config import StorageSettings, VeoSettings  # noqa: E402
from database import Base  # noqa: E402
import models  # noqa: E402,F401
from services import AnimationOrchestrator, OperationLocks  # noqa: E402
from step_store import StepStore  # noqa: E402
from storage import BlobStore  # noqa: E402
from veo import VeoClient  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


# --- Fake S3 client (boto3 shape) ---

class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    def read(self):
        return self._data


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.put_calls = []
        self.put_error = None
        self.sign_error = None

    def put_object(self, Bucket, Key, Body, ContentType=None):
        if self.put_error:
            raise self.put_error
        self.put_calls.append(Key)
        self.objects[Key] = (Body, ContentType)

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise KeyError(f"NoSuchKey: {Key}")
        body, content_type = self.objects[Key]
        return {"Body": FakeBody(body), "ContentType": content_type}

    def generate_presigned_url(self, method, Params, ExpiresIn):
        if self.sign_error:
            raise self.sign_error
        return f"https://signed.test/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


# --- Fake google-genai client ---

class FakeModels:
    def __init__(self):
        self.calls = []
        self.error = None

    def generate_videos(self, **kwargs):
        if self.error:
            raise self.error
        self.calls.append(kwargs)
        return SimpleNamespace(name=f"models/veo/operations/op-{len(self.calls)}")


class FakeOperations:
    def __init__(self):
        self.responses = {}
        self.calls = []
        self.side_effect = None

    def get(self, operation):
        self.calls.append(operation.name)
        if self.side_effect:
            self.side_effect(operation.name)
        return self.responses[operation.name]


class FakeGenai:
    def __init__(self):
        self.models = FakeModels()
        self.operations = FakeOperations()


def running_operation(name, metadata=True):
    return SimpleNamespace(name=name, done=False, metadata={"progress": 10} if metadata else None, error=None, response=None)


def failed_operation(name, message=None):
    return SimpleNamespace(name=name, done=True, metadata=None, error={"message": message} if message else {"code": 13}, response=None)


def finished_operation(name, videos):
    generated = [SimpleNamespace(video=video) for video in videos]
    return SimpleNamespace(
        name=name,
        done=True,
        metadata=None,
        error=None,
        response=SimpleNamespace(generated_videos=generated),
    )


def video(uri=None, video_bytes=None, mime_type="video/mp4"):
    return SimpleNamespace(uri=uri, video_bytes=video_bytes, mime_type=mime_type)


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None, json_data=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.reason = "OK" if status_code < 400 else "Error"
        self._json = json_data

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


# --- Fixtures ---

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return StepStore(db)


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def storage(s3):
    settings = StorageSettings(
        bucket="assets",
        endpoint="https://storage.test",
        access_key="access",
        secret_key="secret",
        public_url="https://cdn.test",
    )
    return BlobStore(settings, client=s3)


@pytest.fixture
def genai_client():
    return FakeGenai()


@pytest.fixture
def veo(genai_client):
    return VeoClient(VeoSettings(api_key="test-key", model="veo-test"), client=genai_client)


@pytest.fixture
def orchestrator(store, veo, storage):
    return AnimationOrchestrator(store, veo, storage, OperationLocks())


@pytest.fixture
def make_plan(store, s3):
    """Create a plan; each step dict may carry an 'animation' AnimationState and an 'illustration' flag."""

    def _make_plan(steps, summary="Build a bookshelf"):
        values = []
        for index, step in enumerate(steps):
            step = dict(step)
            state = step.pop("animation", None)
            if step.pop("illustration", False):
                key = f"plan-illustrations/step-{index}.png"
                s3.objects[key] = (PNG_BYTES, "image/png")
                step["illustration_key"] = key
                step["illustration_url"] = f"https://cdn.test/assets/{key}"
            step.setdefault("title", f"Step {index + 1}")
            step.setdefault("description", "Attach the side panel.")
            if state is not None:
                step.update(to_columns(state))
            values.append(step)
        return store.create_plan(summary, values)

    return _make_plan
