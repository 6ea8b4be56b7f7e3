# tasks.py

from collections import Counter
import logging

from celery import Celery

from config import REDIS_URL, RECONCILE_INTERVAL_SECONDS, StorageSettings, VeoSettings
from database import SessionLocal
from services import AnimationOrchestrator, OperationLocks
from step_store import StepStore
from storage import BlobStore
from veo import VeoClient

celery = Celery('tasks', broker=REDIS_URL, backend=REDIS_URL)
celery.conf.beat_schedule = {
    "reconcile-pending-animations": {
        "task": "tasks.reconcile_pending_animations",
        "schedule": RECONCILE_INTERVAL_SECONDS,
    },
}
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Built once per worker process.
_veo = VeoClient(VeoSettings.from_env())
_storage = BlobStore(StorageSettings.from_env())
_locks = OperationLocks()


def reconcile(orchestrator: AnimationOrchestrator, limit: int = 50) -> dict:
    """Poll every step still waiting on Veo; returns a count per resulting status."""
    summary = Counter()
    operation_ids = [step.animation_operation_id for step in orchestrator.store.list_active(limit)]
    for operation_id in operation_ids:
        try:
            result = orchestrator.poll_status(operation_id)
            summary[result.status] += 1
        except Exception as e:
            logging.error(f"❌ Reconcile failed for animation {operation_id}: {e}")
            summary["error"] += 1
    if operation_ids:
        logging.info(f"Reconciled {len(operation_ids)} animations: {dict(summary)}")
    return dict(summary)


@celery.task(name="tasks.reconcile_pending_animations")
def reconcile_pending_animations(limit: int = 50):
    """
    Background sweep so jobs finish even when no client is polling.
    """
    db = SessionLocal()
    try:
        orchestrator = AnimationOrchestrator(StepStore(db), _veo, _storage, _locks)
        return reconcile(orchestrator, limit)
    finally:
        db.close()
