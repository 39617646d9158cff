import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, generate_uuid, utcnow


class AssignmentStatus(str, enum.Enum):
    active = "active"
    expired = "expired"
    removed = "removed"


class AssignmentType(str, enum.Enum):
    direct = "direct"
    customized = "customized"


class TemplateAssignment(TimestampMixin, Base):
    """Links a client to the onboarding template governing their onboarding.

    At most one active row per client. The service checks first and the
    partial unique index catches assignments that race past the check.
    """

    __tablename__ = "template_assignments"
    __table_args__ = (
        Index(
            "uq_template_assignments_one_active",
            "client_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    template_name: Mapped[str] = mapped_column(String(255), nullable=False)
    assignment_type: Mapped[AssignmentType] = mapped_column(
        Enum(AssignmentType, native_enum=False),
        default=AssignmentType.direct,
        nullable=False,
    )
    assignment_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus, native_enum=False),
        default=AssignmentStatus.active,
        nullable=False,
        index=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expiry_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    correlation_id: Mapped[uuid.UUID] = mapped_column(nullable=False, default=generate_uuid)
    assigned_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
