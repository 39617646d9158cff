import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.models.base import Base, TimestampMixin, generate_uuid


class TrainerProfile(TimestampMixin, Base):
    """Public-facing trainer content, filtered per viewer by the disclosure rules."""

    __tablename__ = "trainer_profiles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tagline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    specializations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    years_experience: Mapped[int | None] = mapped_column(Integer, nullable=True)
    certifications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    professional_journey: Mapped[str | None] = mapped_column(Text, nullable=True)
    ways_of_working: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    testimonial_images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    gallery_images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    package_options: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    free_discovery_call: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    discovery_call_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    reviews: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
