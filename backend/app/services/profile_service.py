"""Trainer profiles rendered through the disclosure rules.

A client viewing a trainer gets each content category at the visibility
their engagement stage allows; content that is not visible is replaced with
placeholder text. Previews render any stage without reading or writing the
viewer's engagement.
"""

import logging
import uuid
from collections.abc import Mapping
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound, ValidationError
from app.engine.disclosure import (
    ContentCategory,
    DisclosureRule,
    Visibility,
    display_name,
    fallback_text,
    unlock_stage,
    visibility_of,
)
from app.engine.stage_machine import Stage
from app.models.trainer_profile import TrainerProfile
from app.models.user import User, UserRole
from app.services import audit_service, engagement_service, visibility_service

logger = logging.getLogger("trainermatch.profiles")

BIO_TEASER_LENGTH = 140

EDITABLE_FIELDS = frozenset({
    "profile_image_url",
    "location",
    "tagline",
    "bio",
    "specializations",
    "rating",
    "total_ratings",
    "years_experience",
    "certifications",
    "professional_journey",
    "ways_of_working",
    "testimonial_images",
    "gallery_images",
    "package_options",
    "free_discovery_call",
    "discovery_call_price",
    "reviews",
    "is_published",
})


async def get_trainer(db: AsyncSession, trainer_id: uuid.UUID) -> User:
    result = await db.execute(
        select(User).where(User.id == trainer_id, User.role == UserRole.trainer)
    )
    trainer = result.scalar_one_or_none()
    if trainer is None:
        raise NotFound("Trainer not found")
    return trainer


async def get_profile(db: AsyncSession, trainer_id: uuid.UUID) -> TrainerProfile:
    result = await db.execute(
        select(TrainerProfile).where(TrainerProfile.trainer_id == trainer_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Trainer profile not found")
    return profile


async def upsert_profile(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    fields: dict,
    ip_address: str | None = None,
) -> TrainerProfile:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
    if fields.get("rating") is not None and not 0 <= fields["rating"] <= 5:
        raise ValidationError("rating must be between 0 and 5")

    await get_trainer(db, trainer_id)
    result = await db.execute(
        select(TrainerProfile).where(TrainerProfile.trainer_id == trainer_id)
    )
    profile = result.scalar_one_or_none()
    created = profile is None
    if profile is None:
        profile = TrainerProfile(trainer_id=trainer_id)
        db.add(profile)

    for key, value in fields.items():
        setattr(profile, key, value)
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=trainer_id,
        event_type="trainer_profile.created" if created else "trainer_profile.updated",
        entity_type="TrainerProfile",
        entity_id=profile.id,
        action="create" if created else "update",
        detail={"fields": sorted(fields)},
        ip_address=ip_address,
    )
    return profile


def _full_content(profile: TrainerProfile, trainer: User, category: ContentCategory) -> dict:
    if category == ContentCategory.profile_image:
        return {"url": profile.profile_image_url}
    if category == ContentCategory.basic_information:
        return {
            "name": display_name(trainer.first_name or "", trainer.last_name, Visibility.visible),
            "location": profile.location,
            "tagline": profile.tagline,
        }
    if category == ContentCategory.specializations:
        return {"specializations": list(profile.specializations or [])}
    if category == ContentCategory.description_bio:
        return {"bio": profile.bio}
    if category == ContentCategory.stats_ratings:
        return {
            "rating": profile.rating,
            "total_ratings": profile.total_ratings,
            "years_experience": profile.years_experience,
        }
    if category == ContentCategory.certifications_qualifications:
        return {"certifications": list(profile.certifications or [])}
    if category == ContentCategory.professional_journey:
        return {"professional_journey": profile.professional_journey}
    if category == ContentCategory.ways_of_working:
        return {"ways_of_working": dict(profile.ways_of_working or {})}
    if category == ContentCategory.testimonial_images:
        return {"images": list(profile.testimonial_images or [])}
    if category == ContentCategory.gallery_images:
        return {"images": list(profile.gallery_images or [])}
    if category == ContentCategory.pricing_discovery_call:
        price = profile.discovery_call_price
        return {
            "package_options": list(profile.package_options or []),
            "free_discovery_call": profile.free_discovery_call,
            "discovery_call_price": str(price) if isinstance(price, Decimal) else price,
        }
    return {"reviews": list(profile.reviews or [])}


def _teaser_content(profile: TrainerProfile, trainer: User, category: ContentCategory) -> dict | None:
    if category == ContentCategory.basic_information:
        return {
            "name": display_name(trainer.first_name or "", trainer.last_name, Visibility.teaser),
            "location": profile.location,
        }
    if category == ContentCategory.profile_image:
        return {"url": profile.profile_image_url, "blurred": True}
    if category == ContentCategory.description_bio and profile.bio:
        bio = profile.bio
        if len(bio) > BIO_TEASER_LENGTH:
            bio = bio[:BIO_TEASER_LENGTH].rstrip() + "…"
        return {"bio": bio}
    if category == ContentCategory.pricing_discovery_call:
        return {"free_discovery_call": profile.free_discovery_call}
    return None


def render_profile(
    profile: TrainerProfile,
    trainer: User,
    stage: Stage,
    *,
    is_guest: bool = False,
    rules: Mapping[ContentCategory, DisclosureRule] | None = None,
) -> dict:
    """Apply the disclosure rules for ``stage`` to a stored profile.

    ``rules`` are the trainer's overrides; categories they do not name use
    the defaults.
    """
    sections = []
    for category in ContentCategory:
        visibility = visibility_of(stage, category, is_guest, rules)
        if visibility == Visibility.visible:
            content = _full_content(profile, trainer, category)
        elif visibility == Visibility.teaser:
            content = _teaser_content(profile, trainer, category)
        else:
            content = None
        sections.append({
            "category": category,
            "visibility": visibility,
            "content": content,
            "fallback_text": fallback_text(category, visibility),
            "unlocks_at": unlock_stage(category, rules),
        })

    name_visibility = visibility_of(stage, ContentCategory.basic_information, is_guest, rules)
    return {
        "trainer_id": trainer.id,
        "stage": stage,
        "is_guest": is_guest,
        "display_name": display_name(trainer.first_name or "", trainer.last_name, name_visibility),
        "sections": sections,
    }


async def get_disclosed_profile(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    viewer: User | None,
) -> dict:
    """Profile as ``viewer`` may see it.

    A client's first view creates their engagement at browsing. Guests see
    the browsing view with guest caps; the trainer and admins see everything.
    Other trainers see the browsing view.
    """
    trainer = await get_trainer(db, trainer_id)
    profile = await get_profile(db, trainer_id)
    rules = await visibility_service.get_rules(db, trainer_id)

    if viewer is None:
        if not profile.is_published:
            raise NotFound("Trainer profile not found")
        return render_profile(profile, trainer, Stage.browsing, is_guest=True, rules=rules)

    if viewer.id == trainer_id or viewer.role == UserRole.admin:
        return render_profile(profile, trainer, Stage.active_client, rules=rules)

    if not profile.is_published:
        raise NotFound("Trainer profile not found")
    if viewer.role != UserRole.client:
        return render_profile(profile, trainer, Stage.browsing, rules=rules)
    engagement = await engagement_service.get_or_create_engagement(
        db, client_id=viewer.id, trainer_id=trainer_id
    )
    return render_profile(profile, trainer, engagement.stage, rules=rules)


async def preview_profile(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    stage: Stage,
    is_guest: bool = False,
) -> dict:
    """Render the profile as a client at ``stage`` would see it. Writes nothing."""
    trainer = await get_trainer(db, trainer_id)
    profile = await get_profile(db, trainer_id)
    rules = await visibility_service.get_rules(db, trainer_id)
    logger.debug("Previewing trainer %s at %s (guest=%s)", trainer_id, stage.value, is_guest)
    rendered = render_profile(profile, trainer, stage, is_guest=is_guest, rules=rules)
    rendered["preview"] = True
    return rendered
