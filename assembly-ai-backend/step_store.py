"""
Persistence for plans and their steps.

Animation fields are only ever written through an AnimationState so the
column combinations stay legal.
"""

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from animation_state import ACTIVE_STATUSES, AnimationState, Processing, to_columns
from models import Plan, Step


class StepStore:
    def __init__(self, db: Session):
        self.db = db

    # --- Animation jobs ---

    def get_by_operation_id(self, operation_id: str) -> Optional[Step]:
        return (
            self.db.query(Step)
            .populate_existing()
            .filter(Step.animation_operation_id == operation_id)
            .first()
        )

    def get_step_for_animation(self, step_id: int) -> Optional[Step]:
        return (
            self.db.query(Step)
            .options(joinedload(Step.plan))
            .filter(Step.id == step_id)
            .first()
        )

    def count_plan_steps(self, plan_id: int) -> int:
        count = self.db.query(func.count(Step.id)).filter(Step.plan_id == plan_id).scalar()
        return int(count or 0)

    def transition(
        self,
        operation_id: str,
        state: AnimationState,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Write state to the step owning operation_id.

        With expected_status the update only applies while the stored status
        still matches it. Returns whether a row changed.
        """
        query = self.db.query(Step).filter(Step.animation_operation_id == operation_id)
        if expected_status is not None:
            query = query.filter(Step.animation_status == expected_status)
        updated = query.update(to_columns(state), synchronize_session=False)
        self.db.commit()
        return updated > 0

    def reset_animation(self, step_id: int, operation_id: str) -> Optional[Step]:
        """Point a step at a freshly started job, clearing any previous result or error."""
        step = self.db.query(Step).filter(Step.id == step_id).first()
        if step is None:
            return None
        for column, value in to_columns(Processing(operation_id)).items():
            setattr(step, column, value)
        self.db.commit()
        self.db.refresh(step)
        return step

    def list_active(self, limit: int = 50) -> List[Step]:
        return (
            self.db.query(Step)
            .filter(Step.animation_status.in_(ACTIVE_STATUSES))
            .filter(Step.animation_operation_id.isnot(None))
            .order_by(Step.id)
            .limit(limit)
            .all()
        )

    # --- Plans ---

    def create_plan(
        self,
        request_summary: str,
        steps: List[dict],
        project: Optional[str] = None,
        checklist: Optional[List[str]] = None,
        reference_key: Optional[str] = None,
        reference_url: Optional[str] = None,
    ) -> Plan:
        plan = Plan(
            request_summary=request_summary,
            project=project,
            checklist=list(checklist or []),
            reference_key=reference_key,
            reference_url=reference_url,
        )
        for position, values in enumerate(steps):
            plan.steps.append(Step(position=position, **values))
        try:
            self.db.add(plan)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(plan)
        return plan

    def list_plans(self, limit: int = 20):
        """Newest plans first, each with its step count."""
        step_count = func.count(Step.id).label("steps_count")
        return (
            self.db.query(Plan, step_count)
            .outerjoin(Step, Step.plan_id == Plan.id)
            .group_by(Plan.id)
            .order_by(Plan.created_at.desc(), Plan.id.desc())
            .limit(limit)
            .all()
        )

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        return (
            self.db.query(Plan)
            .options(joinedload(Plan.steps))
            .filter(Plan.id == plan_id)
            .first()
        )

    def delete_plan(self, plan_id: int) -> bool:
        plan = self.db.query(Plan).filter(Plan.id == plan_id).first()
        if plan is None:
            return False
        self.db.delete(plan)
        self.db.commit()
        return True
