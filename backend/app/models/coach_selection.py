import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.engine.selection_machine import LIVE_STATUSES, RequestStatus
from app.models.base import Base, TimestampMixin, generate_uuid

_LIVE_PREDICATE = "status IN ({})".format(
    ", ".join(f"'{s.name}'" for s in sorted(LIVE_STATUSES, key=lambda s: s.name))
)


class CoachSelectionRequest(TimestampMixin, Base):
    """A client's proposal to buy one of a trainer's packages.

    The package_* columns always describe the current package; accepting an
    alternative overwrites them. A pair has at most one live request.
    """

    __tablename__ = "coach_selection_requests"
    __table_args__ = (
        Index(
            "uq_coach_selection_requests_one_live",
            "client_id",
            "trainer_id",
            unique=True,
            postgresql_where=text(_LIVE_PREDICATE),
            sqlite_where=text(_LIVE_PREDICATE),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    package_id: Mapped[str] = mapped_column(String(100), nullable=False)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    package_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2), nullable=False
    )
    package_duration: Mapped[str] = mapped_column(String(100), nullable=False)
    client_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, native_enum=False, length=40),
        default=RequestStatus.pending,
        nullable=False,
        index=True,
    )
    suggested_alternative_package_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    suggested_alternative_package_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    suggested_alternative_package_price: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2), nullable=True
    )
    suggested_alternative_package_duration: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    trainer_response: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
