"""
Client-side animation poller.

Mirrors a plan viewer: keeps a local copy of each step's animation fields,
polls the status endpoint for every step still rendering, and stops once
nothing is left to wait for.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional

import requests

from config import POLL_INTERVAL_SECONDS

STATUS_PATH = "/veo/status"
GENERATE_PATH = "/veo/generate"
REGENERATE_PATH = "/veo/regenerate"


class PollerError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class StepView:
    step_id: int
    animation_status: Optional[str] = None
    animation_operation_id: Optional[str] = None
    animation_url: Optional[str] = None
    animation_error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.animation_status in ("pending", "processing") and bool(self.animation_operation_id)


@dataclass(frozen=True)
class AnimationUpdate:
    operation_id: str
    status: str
    animation_url: Optional[str] = None
    animation_error: Optional[str] = None


class AnimationPoller:
    def __init__(
        self,
        base_url: str,
        steps: Iterable[StepView] = (),
        interval: float = POLL_INTERVAL_SECONDS,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_workers: int = 4,
        on_update: Optional[Callable[[StepView], None]] = None,
        on_complete: Optional[Callable[[StepView], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.interval = interval
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_workers = max_workers
        self.on_update = on_update
        self.on_complete = on_complete

        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._steps: Dict[int, StepView] = {step.step_id: replace(step) for step in steps}
        # Per operation: last dispatched and last merged request number.
        self._dispatched: Dict[str, int] = {}
        self._merged: Dict[str, int] = {}

    # --- Local state ---

    def track(self, step: StepView) -> None:
        with self._lock:
            self._steps[step.step_id] = replace(step)

    def get(self, step_id: int) -> Optional[StepView]:
        with self._lock:
            step = self._steps.get(step_id)
            return replace(step) if step else None

    def pending_operation_ids(self) -> List[str]:
        with self._lock:
            return sorted({step.animation_operation_id for step in self._steps.values() if step.pending})

    @property
    def has_pending(self) -> bool:
        return bool(self.pending_operation_ids())

    # --- HTTP ---

    def _post(self, path: str, payload: dict) -> dict:
        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise PollerError(str(e) or "Animation update failed.") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.ok:
            message = data.get("error")
            if not isinstance(message, str):
                message = f"Request failed with status {response.status_code}"
            raise PollerError(message, response.status_code)
        return data

    def _request_update(self, operation_id: str) -> AnimationUpdate:
        try:
            data = self._post(STATUS_PATH, {"operationId": operation_id})
        except PollerError as e:
            return AnimationUpdate(operation_id, "failed", None, str(e))

        url = data.get("animationUrl")
        error = data.get("animationError")
        return AnimationUpdate(
            operation_id=operation_id,
            status=data.get("status") or "processing",
            animation_url=url if isinstance(url, str) else None,
            animation_error=error if isinstance(error, str) else None,
        )

    # --- Polling ---

    def _dispatch(self, operation_id: str) -> int:
        with self._lock:
            number = self._dispatched.get(operation_id, 0) + 1
            self._dispatched[operation_id] = number
            return number

    def _merge(self, update: AnimationUpdate, number: int) -> List[StepView]:
        with self._lock:
            if number < self._merged.get(update.operation_id, 0):
                # A request sent later has already landed.
                return []
            self._merged[update.operation_id] = number

            status = "processing" if update.status == "pending" else update.status
            changed = []
            for step in self._steps.values():
                if step.animation_operation_id != update.operation_id:
                    continue
                step.animation_status = status
                if status == "succeeded":
                    step.animation_url = update.animation_url or step.animation_url
                    step.animation_error = None
                elif status == "failed":
                    step.animation_url = None
                    step.animation_error = update.animation_error or "Animation failed."
                else:
                    step.animation_error = None
                changed.append(replace(step))

        for step in changed:
            if self.on_update:
                self.on_update(step)
            if step.animation_status == "succeeded" and step.animation_url and self.on_complete:
                self.on_complete(step)
        return changed

    def _poll_one(self, operation_id: str) -> List[StepView]:
        number = self._dispatch(operation_id)
        return self._merge(self._request_update(operation_id), number)

    def refresh(self, operation_id: str) -> List[StepView]:
        """Poll a single operation on demand."""
        return self._poll_one(operation_id)

    def poll_pending(self) -> List[StepView]:
        """Poll every pending operation concurrently; returns the steps that changed."""
        operation_ids = self.pending_operation_ids()
        if not operation_ids:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(operation_ids))) as executor:
            results = list(executor.map(self._poll_one, operation_ids))
        return [step for changed in results for step in changed]

    def run(self, max_rounds: Optional[int] = None) -> int:
        """Poll on the fixed interval until nothing is pending. Returns the number of rounds."""
        rounds = 0
        self._stopped.clear()
        while self.has_pending and not self._stopped.is_set():
            self.poll_pending()
            rounds += 1
            if max_rounds is not None and rounds >= max_rounds:
                break
            if not self.has_pending or self._stopped.wait(self.interval):
                break
        logging.info(f"Animation poller finished after {rounds} rounds")
        return rounds

    def stop(self) -> None:
        self._stopped.set()

    # --- Starting jobs ---

    def _clear(self, step_id: int) -> None:
        with self._lock:
            step = self._steps.setdefault(step_id, StepView(step_id))
            step.animation_url = None
            step.animation_error = None

    def _mark_started(self, step_id: int, operation_id: str) -> StepView:
        with self._lock:
            step = self._steps[step_id]
            step.animation_status = "processing"
            step.animation_operation_id = operation_id
            step.animation_url = None
            step.animation_error = None
            return replace(step)

    def _mark_error(self, step_id: int, message: str) -> None:
        with self._lock:
            self._steps[step_id].animation_error = message

    def start_animation(
        self,
        step_id: int,
        prompt: str,
        image: Optional[str] = None,
        config: Optional[dict] = None,
    ) -> StepView:
        self._clear(step_id)
        payload = {"prompt": prompt}
        if image:
            payload["image"] = image
        if config:
            payload["config"] = config
        try:
            data = self._post(GENERATE_PATH, payload)
        except PollerError as e:
            self._mark_error(step_id, str(e))
            raise
        return self._mark_started(step_id, data["operationId"])

    def regenerate(self, step_id: int) -> StepView:
        self._clear(step_id)
        try:
            data = self._post(REGENERATE_PATH, {"stepId": step_id})
        except PollerError as e:
            self._mark_error(step_id, str(e) or "Failed to start a new animation request.")
            raise
        return self._mark_started(step_id, data["operationId"])
