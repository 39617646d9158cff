import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.engine.stage_machine import Stage
from app.models.base import Base, TimestampMixin, generate_uuid


class Engagement(TimestampMixin, Base):
    """Relationship between one client and one trainer.

    Created at browsing on first view. ``stage`` is written only by
    engagement_service.apply_event.
    """

    __tablename__ = "engagements"
    __table_args__ = (
        UniqueConstraint("client_id", "trainer_id", name="uq_engagement_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    stage: Mapped[Stage] = mapped_column(
        Enum(Stage, native_enum=False, length=40),
        default=Stage.browsing,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    liked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    discovery_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    became_client_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
