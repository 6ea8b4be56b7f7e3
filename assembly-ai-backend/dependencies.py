# dependencies.py

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from services import AnimationOrchestrator
from step_store import StepStore
from storage import BlobStore


def get_store(db: Session = Depends(get_db)) -> StepStore:
    return StepStore(db)


def get_storage(request: Request) -> BlobStore:
    return request.app.state.storage


def get_orchestrator(request: Request, store: StepStore = Depends(get_store)) -> AnimationOrchestrator:
    state = request.app.state
    return AnimationOrchestrator(store, state.veo, state.storage, state.operation_locks)
