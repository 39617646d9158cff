import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.engine.matching import MappingType
from app.models.base import Base, TimestampMixin, generate_uuid


class ClientCoachingStyle(TimestampMixin, Base):
    """A coaching style a client can ask for, e.g. "tough_love"."""

    __tablename__ = "client_coaching_styles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    style_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TrainerCoachingStyle(TimestampMixin, Base):
    """A coaching style a trainer can offer, e.g. "drill_sergeant"."""

    __tablename__ = "trainer_coaching_styles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    style_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CoachingStyleMapping(TimestampMixin, Base):
    """Weighted edge from a client style to a trainer style.

    mapping_type only seeds the default weight; weight is edited freely.
    """

    __tablename__ = "coaching_style_mappings"
    __table_args__ = (
        UniqueConstraint("client_style_id", "trainer_style_id", name="uq_style_mapping_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    client_style_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("client_coaching_styles.id"), nullable=False, index=True
    )
    trainer_style_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("trainer_coaching_styles.id"), nullable=False, index=True
    )
    weight: Mapped[int] = mapped_column(Integer, nullable=False)
    mapping_type: Mapped[MappingType] = mapped_column(
        Enum(MappingType, native_enum=False),
        default=MappingType.primary,
        nullable=False,
    )


class ClientStyleSelection(Base):
    """A coaching style a client declared in their survey."""

    __tablename__ = "client_style_selections"
    __table_args__ = (
        UniqueConstraint("client_id", "client_style_id", name="uq_client_style_selection"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    client_style_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("client_coaching_styles.id"), nullable=False
    )


class TrainerStyleSelection(Base):
    """A coaching style a trainer declared on their profile."""

    __tablename__ = "trainer_style_selections"
    __table_args__ = (
        UniqueConstraint("trainer_id", "trainer_style_id", name="uq_trainer_style_selection"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    trainer_style_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("trainer_coaching_styles.id"), nullable=False
    )
