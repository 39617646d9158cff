import uuid
from decimal import Decimal

from pydantic import BaseModel, Field

from app.engine.disclosure import ContentCategory, Visibility
from app.engine.stage_machine import Stage


class TrainerProfileUpdate(BaseModel):
    profile_image_url: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=255)
    tagline: str | None = Field(None, max_length=255)
    bio: str | None = None
    specializations: list[str] | None = None
    rating: float | None = None
    total_ratings: int | None = Field(None, ge=0)
    years_experience: int | None = Field(None, ge=0)
    certifications: list[str] | None = None
    professional_journey: str | None = None
    ways_of_working: dict | None = None
    testimonial_images: list[str] | None = None
    gallery_images: list[str] | None = None
    package_options: list[dict] | None = None
    free_discovery_call: bool | None = None
    discovery_call_price: Decimal | None = Field(None, ge=0)
    reviews: list[dict] | None = None
    is_published: bool | None = None


class ProfileSection(BaseModel):
    category: ContentCategory
    visibility: Visibility
    content: dict | None = None
    fallback_text: str | None = None
    unlocks_at: Stage


class DisclosedProfile(BaseModel):
    trainer_id: uuid.UUID
    stage: Stage
    is_guest: bool
    display_name: str
    sections: list[ProfileSection]
    preview: bool = False


class VisibilityOverrideUpdate(BaseModel):
    visible_from: Stage
    teaser_from: Stage | None = None
    guest_visible: bool = False


class VisibilityRuleRead(BaseModel):
    category: ContentCategory
    teaser_from: Stage | None
    visible_from: Stage
    guest_visible: bool
    overridden: bool
