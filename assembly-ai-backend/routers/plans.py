"""
Router for assembly plan endpoints.
Stores plans with their step illustrations, lists them, and deletes them.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from fastapi import APIRouter, Depends, HTTPException, Query

from animation_state import AnimationStatus
from dependencies import get_orchestrator, get_storage, get_store
from schemas import CreatePlanRequest, CreatePlanResponse, DeletePlanRequest, PlanDetail, PlanListResponse
from services import AnimationContext, AnimationError, AnimationOrchestrator
from step_store import StepStore
from storage import BlobStore, StorageError

MAX_PARALLEL_TRANSFERS = 8


# Create the router
router = APIRouter(prefix="/plans", tags=["plans"])


def _run_parallel(func, items):
    items = list(items)
    if not items:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_TRANSFERS, len(items))) as executor:
        return list(executor.map(func, items))


def _store_illustration(storage: BlobStore, step) -> dict:
    """Upload an inline illustration; plain URLs are kept as they are."""
    values = {
        "step_identifier": step.id,
        "title": step.title,
        "description": step.description,
        "notes": step.notes,
        "illustration_key": None,
        "illustration_url": step.illustration_url,
    }
    if step.illustration and step.illustration.startswith("data:"):
        stored = storage.upload_data_url_image(step.illustration)
        values["illustration_key"] = stored.key
        values["illustration_url"] = stored.url
    elif step.illustration:
        values["illustration_url"] = step.illustration
    return values


def _plan_detail(plan, storage: BlobStore) -> dict:
    # Read everything off the ORM objects here; only plain values go to worker threads.
    steps = [
        {
            "database_id": step.id,
            "id": step.step_identifier or str(step.id),
            "position": step.position,
            "title": step.title,
            "description": step.description,
            "notes": step.notes,
            "illustration_key": step.illustration_key,
            "illustration_url": step.illustration_url,
            "animation_status": step.animation_status,
            "animation_operation_id": step.animation_operation_id,
            "animation_key": step.animation_key,
            "animation_url": step.animation_url,
            "animation_error": step.animation_error,
        }
        for step in plan.steps
    ]

    def sign(step: dict) -> dict:
        step["illustration_url"] = storage.display_url(step.pop("illustration_key"), step["illustration_url"])
        animation_key = step.pop("animation_key")
        if step["animation_status"] == AnimationStatus.SUCCEEDED.value:
            step["animation_url"] = storage.display_url(animation_key, step["animation_url"])
        return step

    return {
        "id": plan.id,
        "request_summary": plan.request_summary,
        "project": plan.project,
        "checklist": plan.checklist or [],
        "reference_url": storage.display_url(plan.reference_key, plan.reference_url),
        "created_at": plan.created_at,
        "steps": _run_parallel(sign, steps),
    }


@router.post("", response_model=CreatePlanResponse)
def create_plan(
    request: CreatePlanRequest,
    store: StepStore = Depends(get_store),
    storage: BlobStore = Depends(get_storage),
    orchestrator: AnimationOrchestrator = Depends(get_orchestrator),
):
    """
    Persists a plan and its steps. Inline illustrations are uploaded in parallel.
    With animateFirstStep, the first illustrated step gets an animation job right away.
    """
    reference_image = None
    if request.reference_key or request.reference_url:
        try:
            reference_image = storage.get_data_url(key=request.reference_key, url=request.reference_url)
        except StorageError as e:
            logging.error(f"Failed to download attachment: {e}")
            raise HTTPException(
                status_code=422,
                detail="We couldn't access the attachment. Please re-upload the file and try again.",
            )

    try:
        step_values = _run_parallel(lambda step: _store_illustration(storage, step), request.steps)
    except StorageError as e:
        logging.error(f"Failed to store step illustrations: {e}")
        raise HTTPException(
            status_code=500,
            detail="We generated your plan but storing step illustrations failed. Please try again.",
        )

    try:
        plan = store.create_plan(
            request.request_summary,
            step_values,
            project=request.project,
            checklist=request.checklist,
            reference_key=request.reference_key,
            reference_url=request.reference_url,
        )
    except Exception as e:
        logging.error(f"Failed to store plan: {e}")
        raise HTTPException(status_code=500, detail="Failed to store generated plan. Please try again.")

    animation_start_error = None
    if request.animate_first_step and plan.steps:
        first = plan.steps[0]
        inline = request.steps[0].illustration
        try:
            if inline and inline.startswith("data:"):
                illustration = inline
            elif first.illustration_key or first.illustration_url:
                illustration = storage.get_data_url(key=first.illustration_key, url=first.illustration_url)
            else:
                illustration = None

            if illustration is None:
                animation_start_error = "Step illustration was not generated."
            else:
                context = AnimationContext(request_summary=plan.request_summary, reference_image=reference_image)
                orchestrator.animate_step(first, illustration, context, total_steps=len(plan.steps))
        except (AnimationError, StorageError) as e:
            logging.error(f"Failed to start animation for the first step of plan {plan.id}: {e}")
            animation_start_error = str(e) or "Failed to start Veo animation."

    plan = store.get_plan(plan.id)
    logging.info(f"Stored plan {plan.id} with {len(plan.steps)} steps")
    return {
        "plan_id": plan.id,
        "plan": _plan_detail(plan, storage),
        "animation_start_error": animation_start_error,
    }


@router.get("", response_model=PlanListResponse)
def list_plans(limit: int = Query(50, ge=1, le=100), store: StepStore = Depends(get_store)):
    rows = store.list_plans(limit)
    return {
        "plans": [
            {
                "id": plan.id,
                "request_summary": plan.request_summary,
                "project": plan.project,
                "created_at": plan.created_at,
                "steps_count": int(steps_count or 0),
            }
            for plan, steps_count in rows
        ]
    }


@router.get("/{plan_id}", response_model=PlanDetail)
def get_plan(plan_id: int, store: StepStore = Depends(get_store), storage: BlobStore = Depends(get_storage)):
    plan = store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan could not be found.")
    return _plan_detail(plan, storage)


@router.delete("")
def delete_plan(request: DeletePlanRequest, store: StepStore = Depends(get_store)):
    try:
        deleted = store.delete_plan(request.id)
    except Exception as e:
        logging.error(f"Failed to delete plan {request.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to delete plan. Please try again.")

    if not deleted:
        raise HTTPException(status_code=404, detail="Plan could not be found.")
    return {"ok": True}
