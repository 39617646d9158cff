"""Per-trainer overrides of the default disclosure rules.

A trainer (or an admin acting for them) may move the teaser and full-content
unlock stages of any category, or open a browsing-level category to guests.
Overrides are validated by disclosure.check_rule before they are stored.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.engine.disclosure import RULES, ContentCategory, DisclosureRule, check_rule
from app.engine.stage_machine import Stage
from app.models.trainer_visibility import TrainerVisibilitySetting
from app.models.user import User, UserRole
from app.services import audit_service

logger = logging.getLogger("trainermatch.visibility")


async def _require_trainer(db: AsyncSession, trainer_id: uuid.UUID) -> None:
    result = await db.execute(
        select(User.id).where(User.id == trainer_id, User.role == UserRole.trainer)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Trainer not found")


async def list_overrides(
    db: AsyncSession,
    trainer_id: uuid.UUID,
) -> list[TrainerVisibilitySetting]:
    result = await db.execute(
        select(TrainerVisibilitySetting).where(TrainerVisibilitySetting.trainer_id == trainer_id)
    )
    return list(result.scalars().all())


async def get_rules(
    db: AsyncSession,
    trainer_id: uuid.UUID,
) -> dict[ContentCategory, DisclosureRule]:
    """The trainer's overrides, keyed by category. Empty when none are set."""
    return {row.category: row.to_rule() for row in await list_overrides(db, trainer_id)}


async def get_matrix(db: AsyncSession, trainer_id: uuid.UUID) -> list[dict]:
    """Effective rule for every category, flagged where the trainer overrides it."""
    await _require_trainer(db, trainer_id)
    rules = await get_rules(db, trainer_id)
    matrix = []
    for category in ContentCategory:
        rule = rules.get(category, RULES[category])
        matrix.append({
            "category": category,
            "teaser_from": rule.teaser_from,
            "visible_from": rule.visible_from,
            "guest_visible": rule.guest_visible,
            "overridden": category in rules,
        })
    return matrix


async def _get_setting(
    db: AsyncSession,
    trainer_id: uuid.UUID,
    category: ContentCategory,
) -> TrainerVisibilitySetting | None:
    result = await db.execute(
        select(TrainerVisibilitySetting).where(
            TrainerVisibilitySetting.trainer_id == trainer_id,
            TrainerVisibilitySetting.category == category,
        )
    )
    return result.scalar_one_or_none()


async def set_override(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    category: ContentCategory,
    visible_from: Stage,
    teaser_from: Stage | None = None,
    guest_visible: bool = False,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> TrainerVisibilitySetting:
    """Create or replace the trainer's rule for ``category``.

    Raises ValidationError if the rule is not monotone or opens hidden
    content to guests; nothing is written in that case.
    """
    rule = DisclosureRule(
        visible_from=visible_from, teaser_from=teaser_from, guest_visible=guest_visible
    )
    check_rule(category, rule)
    await _require_trainer(db, trainer_id)

    setting = await _get_setting(db, trainer_id, category)
    previous = None if setting is None else setting.to_rule()
    if setting is None:
        setting = TrainerVisibilitySetting(trainer_id=trainer_id, category=category)
        db.add(setting)
    setting.visible_from = visible_from
    setting.teaser_from = teaser_from
    setting.guest_visible = guest_visible
    await db.flush()

    logger.info(
        "Visibility of %s for trainer %s set to teaser=%s visible=%s guest=%s",
        category.value,
        trainer_id,
        teaser_from.value if teaser_from else None,
        visible_from.value,
        guest_visible,
    )
    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="trainer_visibility.updated",
        entity_type="TrainerVisibilitySetting",
        entity_id=setting.id,
        action="set",
        detail={
            "trainer_id": str(trainer_id),
            "category": category.value,
            "previous": _describe(previous),
            "rule": _describe(rule),
        },
        ip_address=ip_address,
    )
    return setting


async def clear_override(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    category: ContentCategory,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> None:
    """Drop the trainer's rule for ``category`` so the default applies again."""
    setting = await _get_setting(db, trainer_id, category)
    if setting is None:
        raise NotFound(f"No visibility override for {category.value}")
    setting_id = setting.id
    previous = setting.to_rule()
    await db.delete(setting)
    await db.flush()

    logger.info("Visibility override of %s cleared for trainer %s", category.value, trainer_id)
    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="trainer_visibility.cleared",
        entity_type="TrainerVisibilitySetting",
        entity_id=setting_id,
        action="clear",
        detail={
            "trainer_id": str(trainer_id),
            "category": category.value,
            "previous": _describe(previous),
        },
        ip_address=ip_address,
    )


def _describe(rule: DisclosureRule | None) -> dict | None:
    if rule is None:
        return None
    return {
        "teaser_from": rule.teaser_from.value if rule.teaser_from else None,
        "visible_from": rule.visible_from.value,
        "guest_visible": rule.guest_visible,
    }
