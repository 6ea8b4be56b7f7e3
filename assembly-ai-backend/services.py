"""
Service classes for the Assembly Animator backend.
Contains the AnimationOrchestrator, which drives a step's animation job from
submission to a stored video, and the errors it raises.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from animation_state import Failed, Processing, Succeeded, state_of
from config import build_animation_prompt
from step_store import StepStore
from storage import BlobStore, StorageError
from veo import VeoClient

STORE_FAILURE = "Failed to store generated animation."
MISSING_PAYLOAD = "Veo reported success but the video payload is missing."


class AnimationError(Exception):
    """Base class for failures a caller can show to the user as-is."""


class OperationNotFoundError(AnimationError):
    def __init__(self, operation_id: str):
        super().__init__("Animation operation was not found.")
        self.operation_id = operation_id


class StepNotFoundError(AnimationError):
    def __init__(self, step_id: int):
        super().__init__("Step could not be found.")
        self.step_id = step_id


class MissingIllustrationError(AnimationError):
    def __init__(self, step_id: int):
        super().__init__("This step does not have a stored illustration to generate an animation.")
        self.step_id = step_id


class AnimationStartError(AnimationError):
    """The generation job could not be submitted."""


@dataclass(frozen=True)
class StepInput:
    id: str
    title: str
    description: str
    notes: Optional[str] = None

    @classmethod
    def from_step(cls, step) -> "StepInput":
        return cls(
            id=step.step_identifier or str(step.id),
            title=step.title,
            description=step.description,
            notes=step.notes,
        )


@dataclass(frozen=True)
class AnimationContext:
    request_summary: str
    reference_image: Optional[str] = None  # data URL


@dataclass(frozen=True)
class AnimationStatusResult:
    operation_id: str
    status: str  # processing | succeeded | failed
    animation_url: Optional[str] = None
    animation_error: Optional[str] = None


class OperationLocks:
    """One lock per operation id, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self):
        return len(self._locks)


class AnimationOrchestrator:
    """Starts animation jobs and reconciles their polled state into the step record."""

    def __init__(
        self,
        store: StepStore,
        veo: VeoClient,
        storage: BlobStore,
        locks: Optional[OperationLocks] = None,
    ):
        self.store = store
        self.veo = veo
        self.storage = storage
        self.locks = locks or OperationLocks()

    # --- Starting jobs ---

    def start_animation(
        self,
        step: StepInput,
        index: int,
        total_steps: int,
        context: AnimationContext,
        illustration: Optional[str] = None,
        config: Optional[dict] = None,
    ) -> str:
        """Submit a job for one step and return its operation id. Persists nothing."""
        seed_image = illustration or context.reference_image
        prompt = build_animation_prompt(
            title=step.title,
            description=step.description,
            notes=step.notes,
            index=index,
            total_steps=total_steps,
            request_summary=context.request_summary,
            has_reference=bool(seed_image),
        )
        try:
            operation_id = self.veo.start(prompt, image_data_url=seed_image, config=config)
        except Exception as e:
            logging.error(f"Failed to start animation for step {step.id}: {e}")
            raise AnimationStartError(str(e) or "Failed to start Veo animation.") from e

        logging.info(f"Started animation {operation_id} for step {step.id} ({index + 1}/{total_steps})")
        return operation_id

    def animate_step(self, step, illustration: str, context: AnimationContext, total_steps: int) -> str:
        """Start a job for a stored step and point the step at it."""
        index = step.position if isinstance(step.position, int) else 0
        previous_operation_id = step.animation_operation_id
        operation_id = self.start_animation(
            StepInput.from_step(step), index, total_steps, context, illustration
        )
        self.store.reset_animation(step.id, operation_id)
        if previous_operation_id and previous_operation_id != operation_id:
            # Veo has no cancel; the old job keeps running upstream and is never collected.
            logging.info(
                f"Step {step.id} moved from operation {previous_operation_id} to {operation_id}; "
                f"the previous job is orphaned"
            )
        return operation_id

    def regenerate(self, step_id: int) -> str:
        step = self.store.get_step_for_animation(step_id)
        if step is None:
            raise StepNotFoundError(step_id)

        if not (step.illustration_key or step.illustration_url):
            raise MissingIllustrationError(step_id)

        try:
            illustration = self.storage.get_data_url(key=step.illustration_key, url=step.illustration_url)
        except StorageError as e:
            raise AnimationError(str(e) or "Failed to load step illustration.") from e

        total_steps = self.store.count_plan_steps(step.plan_id) or 1
        context = AnimationContext(request_summary=step.plan.request_summary)
        return self.animate_step(step, illustration, context, total_steps)

    # --- Polling ---

    def poll_status(self, operation_id: str) -> AnimationStatusResult:
        step = self.store.get_by_operation_id(operation_id)
        if step is None:
            raise OperationNotFoundError(operation_id)

        settled = self._settled_result(step)
        if settled is not None:
            return settled

        with self.locks.hold(operation_id):
            # Another poll may have finished this operation while we waited.
            step = self.store.get_by_operation_id(operation_id)
            if step is None:
                raise OperationNotFoundError(operation_id)
            settled = self._settled_result(step)
            if settled is not None:
                return settled

            expected_status = step.animation_status
            status = self.veo.get_status(operation_id)

            if status.running:
                if expected_status != Processing.status.value:
                    moved = self._commit(operation_id, Processing(operation_id), expected_status)
                    if moved is not None:
                        return moved
                return AnimationStatusResult(
                    operation_id=operation_id,
                    status="processing",
                    animation_url=self.storage.display_url(step.animation_key, step.animation_url),
                )

            if status.status == "failed":
                return self._fail(operation_id, status.error or "Veo animation failed.", expected_status)

            return self._store_video(operation_id, status.videos, expected_status)

    def _settled_result(self, step) -> Optional[AnimationStatusResult]:
        """Result for a step that no longer needs Veo, or None if it is still running."""
        state = state_of(step)
        if isinstance(state, Succeeded):
            return AnimationStatusResult(
                operation_id=state.operation_id,
                status="succeeded",
                animation_url=self.storage.display_url(state.key, state.url),
            )
        if isinstance(state, Failed):
            return AnimationStatusResult(
                operation_id=state.operation_id,
                status="failed",
                animation_error=state.message,
            )
        return None

    def _store_video(self, operation_id: str, videos, expected_status) -> AnimationStatusResult:
        if not videos:
            return self._fail(operation_id, MISSING_PAYLOAD, expected_status)

        try:
            data, mime_type = self.veo.download(videos[0])
            stored = self.storage.upload_video(data, mime_type)
        except Exception as e:
            logging.error(f"Animation {operation_id} finished upstream but could not be stored: {e}")
            return self._fail(operation_id, str(e) or STORE_FAILURE, expected_status)

        logging.info(f"Animation {operation_id} stored at {stored.key}")
        return self._commit(
            operation_id,
            Succeeded(operation_id, stored.key, stored.url),
            expected_status,
            AnimationStatusResult(
                operation_id=operation_id,
                status="succeeded",
                animation_url=stored.signed_url or stored.url,
            ),
        )

    def _fail(self, operation_id: str, message: str, expected_status) -> AnimationStatusResult:
        message = message.strip() or "Veo animation failed."
        logging.warning(f"Animation {operation_id} failed: {message}")
        return self._commit(
            operation_id,
            Failed(operation_id, message),
            expected_status,
            AnimationStatusResult(operation_id=operation_id, status="failed", animation_error=message),
        )

    def _commit(self, operation_id, state, expected_status, result=None) -> Optional[AnimationStatusResult]:
        if self.store.transition(operation_id, state, expected_status=expected_status):
            return result

        # The row moved on underneath us (another process, or a regenerate); report what is stored.
        logging.warning(f"Animation {operation_id} changed while polling; keeping the stored state")
        step = self.store.get_by_operation_id(operation_id)
        if step is None:
            raise OperationNotFoundError(operation_id)
        settled = self._settled_result(step)
        if settled is not None:
            return settled
        return AnimationStatusResult(operation_id=operation_id, status="processing")

