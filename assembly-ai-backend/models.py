# models.py

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class Plan(Base):
    """An assembly plan and its optional reference image."""

    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    request_summary = Column(Text, nullable=False)
    project = Column(String, nullable=True)
    checklist = Column(JSON, nullable=False, default=list)
    reference_key = Column(String, nullable=True)
    reference_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    steps = relationship(
        "Step",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="Step.position",
    )


class Step(Base):
    """A single plan step; the animation_* columns hold its animation job."""

    __tablename__ = "steps"
    __table_args__ = (UniqueConstraint("plan_id", "position", name="steps_plan_position_idx"),)

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True)
    step_identifier = Column(String, nullable=True)
    position = Column(Integer, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    illustration_key = Column(String, nullable=True)
    illustration_url = Column(String, nullable=True)
    animation_status = Column(String, nullable=True)  # none, pending, processing, succeeded, failed
    animation_operation_id = Column(String, nullable=True, index=True)
    animation_key = Column(String, nullable=True)
    animation_url = Column(String, nullable=True)
    animation_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    plan = relationship("Plan", back_populates="steps")
