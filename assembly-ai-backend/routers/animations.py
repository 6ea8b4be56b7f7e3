"""
Router for Veo animation endpoints.
Handles starting a job, polling its status, and regenerating a step's animation.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_orchestrator
from schemas import (
    AnimationStatusRequest,
    AnimationStatusResponse,
    RegenerateRequest,
    RegenerateResponse,
    StartAnimationRequest,
    StartAnimationResponse,
)
from services import (
    AnimationError,
    AnimationOrchestrator,
    OperationNotFoundError,
    StepNotFoundError,
)


# Create the router
router = APIRouter(prefix="/veo", tags=["animations"])


@router.post("/generate", response_model=StartAnimationResponse)
def start_animation(request: StartAnimationRequest, orchestrator: AnimationOrchestrator = Depends(get_orchestrator)):
    """
    Submits a free-form animation job and immediately returns its operation id.
    Nothing is stored; the caller tracks the id.
    """
    config = request.config.model_dump(exclude_none=True) if request.config else None
    try:
        operation_id = orchestrator.veo.start(request.prompt, image_data_url=request.image, config=config)
    except Exception as e:
        logging.error(f"Failed to start Veo video generation: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to start Veo video generation.")

    logging.info(f"✨ Animation {operation_id} submitted for prompt: '{request.prompt}'")
    return {"operation_id": operation_id}


@router.post("/status", response_model=AnimationStatusResponse)
def get_animation_status(
    request: AnimationStatusRequest, orchestrator: AnimationOrchestrator = Depends(get_orchestrator)
):
    """
    Reports the normalized status of an animation, polling Veo only while it is still running.
    """
    try:
        result = orchestrator.poll_status(request.operation_id)
    except OperationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logging.error(f"Failed to fetch status for {request.operation_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to fetch Veo operation status.")

    return {
        "operation_id": result.operation_id,
        "status": result.status,
        "animation_url": result.animation_url,
        "animation_error": result.animation_error,
    }


@router.post("/regenerate", response_model=RegenerateResponse)
def regenerate_animation(request: RegenerateRequest, orchestrator: AnimationOrchestrator = Depends(get_orchestrator)):
    """
    Starts a fresh animation for a stored step from its illustration.
    The step's previous result is only cleared once the new job has been accepted.
    """
    try:
        operation_id = orchestrator.regenerate(request.step_id)
    except StepNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AnimationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logging.error(f"Failed to regenerate animation for step {request.step_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to start Veo animation.")

    return {"operation_id": operation_id, "status": "processing"}
