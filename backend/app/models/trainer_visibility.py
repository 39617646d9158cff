import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.engine.disclosure import ContentCategory, DisclosureRule
from app.engine.stage_machine import Stage
from app.models.base import Base, TimestampMixin, generate_uuid


class TrainerVisibilitySetting(TimestampMixin, Base):
    """A trainer's replacement for the default disclosure rule of one category.

    Categories without a row use the defaults in app.engine.disclosure.RULES.
    """

    __tablename__ = "trainer_visibility_settings"
    __table_args__ = (
        UniqueConstraint("trainer_id", "category", name="uq_trainer_visibility_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    category: Mapped[ContentCategory] = mapped_column(
        Enum(ContentCategory, native_enum=False, length=40), nullable=False
    )
    teaser_from: Mapped[Stage | None] = mapped_column(
        Enum(Stage, native_enum=False, length=40), nullable=True
    )
    visible_from: Mapped[Stage] = mapped_column(
        Enum(Stage, native_enum=False, length=40), nullable=False
    )
    guest_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def to_rule(self) -> DisclosureRule:
        return DisclosureRule(
            visible_from=self.visible_from,
            teaser_from=self.teaser_from,
            guest_visible=self.guest_visible,
        )
