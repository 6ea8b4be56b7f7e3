# assembly-ai-backend/tests/test_poller.py

import threading

import pytest
import requests

from conftest import FakeResponse
from poller import AnimationPoller, AnimationUpdate, PollerError, StepView


class FakeSession:
    """Answers POSTs from a per-path queue of responses (or exceptions)."""

    def __init__(self):
        self.calls = []
        self.replies = {}
        self._lock = threading.Lock()

    def queue(self, path, *responses):
        self.replies.setdefault(path, []).extend(responses)

    def post(self, url, json=None, timeout=None):
        path = url.split("http://api.test", 1)[1]
        with self._lock:
            self.calls.append((path, json))
            reply = self.replies[path].pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(json)
        return reply


def status_reply(operation_id, status, url=None, error=None):
    return FakeResponse(
        200,
        json_data={"operationId": operation_id, "status": status, "animationUrl": url, "animationError": error},
    )


@pytest.fixture
def session():
    return FakeSession()


def make_poller(session, steps, **kwargs):
    return AnimationPoller("http://api.test/", steps, interval=0, session=session, **kwargs)


def test_only_steps_with_active_operations_are_pending(session):
    poller = make_poller(
        session,
        [
            StepView(1, "processing", "op-1"),
            StepView(2, "pending", "op-2"),
            StepView(3, "succeeded", "op-3", "https://cdn.test/3.mp4"),
            StepView(4, "processing", None),
            StepView(5),
        ],
    )
    assert poller.pending_operation_ids() == ["op-1", "op-2"]


def test_poll_pending_merges_results(session):
    updates, completed = [], []
    poller = make_poller(
        session,
        [StepView(1, "processing", "op-1"), StepView(2, "processing", "op-2")],
        on_update=updates.append,
        on_complete=completed.append,
    )

    def reply(body):
        if body["operationId"] == "op-1":
            return status_reply("op-1", "succeeded", "https://cdn.test/1.mp4")
        return status_reply("op-2", "failed", error="Blocked.")

    session.queue("/veo/status", reply, reply)

    changed = poller.poll_pending()

    assert len(changed) == 2
    assert poller.get(1).animation_status == "succeeded"
    assert poller.get(1).animation_url == "https://cdn.test/1.mp4"
    assert poller.get(2).animation_status == "failed"
    assert poller.get(2).animation_error == "Blocked."
    assert [step.step_id for step in completed] == [1]
    assert len(updates) == 2
    assert not poller.has_pending


def test_pending_reply_is_shown_as_processing(session):
    poller = make_poller(session, [StepView(1, "pending", "op-1")])
    session.queue("/veo/status", status_reply("op-1", "pending"))

    poller.refresh("op-1")

    assert poller.get(1).animation_status == "processing"


def test_http_error_becomes_local_failure(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])
    session.queue("/veo/status", FakeResponse(404, json_data={"error": "Animation operation was not found."}))

    poller.refresh("op-1")

    step = poller.get(1)
    assert step.animation_status == "failed"
    assert step.animation_error == "Animation operation was not found."


def test_error_without_body_uses_status_code(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])
    session.queue("/veo/status", FakeResponse(502))

    poller.refresh("op-1")

    assert poller.get(1).animation_error == "Request failed with status 502"


def test_network_error_becomes_local_failure(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])
    session.queue("/veo/status", requests.ConnectionError("connection refused"))

    poller.refresh("op-1")

    assert poller.get(1).animation_status == "failed"
    assert "connection refused" in poller.get(1).animation_error


def test_stale_reply_is_dropped(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])

    older = poller._dispatch("op-1")
    newer = poller._dispatch("op-1")
    poller._merge(AnimationUpdate("op-1", "succeeded", "https://cdn.test/1.mp4"), newer)
    dropped = poller._merge(AnimationUpdate("op-1", "processing"), older)

    assert dropped == []
    assert poller.get(1).animation_status == "succeeded"


def test_run_stops_when_nothing_is_pending(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])
    session.queue(
        "/veo/status",
        status_reply("op-1", "processing"),
        status_reply("op-1", "processing"),
        status_reply("op-1", "succeeded", "https://cdn.test/1.mp4"),
    )

    rounds = poller.run()

    assert rounds == 3
    assert poller.get(1).animation_status == "succeeded"


def test_run_without_pending_steps_does_nothing(session):
    poller = make_poller(session, [StepView(1, "succeeded", "op-1", "https://cdn.test/1.mp4")])

    assert poller.run() == 0
    assert session.calls == []


def test_run_respects_max_rounds(session):
    poller = make_poller(session, [StepView(1, "processing", "op-1")])
    session.queue("/veo/status", status_reply("op-1", "processing"), status_reply("op-1", "processing"))

    assert poller.run(max_rounds=2) == 2
    assert poller.has_pending


def test_regenerate_clears_step_and_tracks_new_operation(session):
    poller = make_poller(session, [StepView(7, "failed", "op-old", None, "Blocked.")])
    session.queue("/veo/regenerate", FakeResponse(200, json_data={"operationId": "op-new", "status": "processing"}))

    step = poller.regenerate(7)

    assert session.calls == [("/veo/regenerate", {"stepId": 7})]
    assert step.animation_status == "processing"
    assert step.animation_operation_id == "op-new"
    assert step.animation_error is None
    assert poller.pending_operation_ids() == ["op-new"]


def test_regenerate_failure_keeps_error_on_step(session):
    poller = make_poller(session, [StepView(7, "succeeded", "op-old", "https://cdn.test/old.mp4")])
    session.queue(
        "/veo/regenerate",
        FakeResponse(500, json_data={"error": "This step does not have a stored illustration to generate an animation."}),
    )

    with pytest.raises(PollerError) as exc_info:
        poller.regenerate(7)

    step = poller.get(7)
    assert exc_info.value.status_code == 500
    assert step.animation_url is None
    assert step.animation_error == "This step does not have a stored illustration to generate an animation."


def test_start_animation_posts_prompt_and_config(session):
    poller = make_poller(session, [])
    session.queue("/veo/generate", FakeResponse(200, json_data={"operationId": "op-1"}))

    step = poller.start_animation(3, "Fold the flaps.", image="data:image/png;base64,AAAA", config={"durationSeconds": 4})

    assert session.calls[0] == (
        "/veo/generate",
        {"prompt": "Fold the flaps.", "image": "data:image/png;base64,AAAA", "config": {"durationSeconds": 4}},
    )
    assert step.step_id == 3
    assert poller.pending_operation_ids() == ["op-1"]
