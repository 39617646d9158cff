"""Coaching style service: style catalogs, weighted mappings, fit scoring.

Two independent catalogs (client styles and trainer styles) are joined by
weighted mappings. Styles are never hard-deleted: deactivation hides a style
from pickers while its mappings and past selections stay intact.
All admin writes audit-logged.
"""

import enum
import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound, ValidationError
from app.engine.matching import (
    MAX_WEIGHT,
    MIN_WEIGHT,
    MappingEdge,
    MappingType,
    MatchResult,
    default_weight,
    match_score,
)
from app.models.coaching_style import (
    ClientCoachingStyle,
    ClientStyleSelection,
    CoachingStyleMapping,
    TrainerCoachingStyle,
    TrainerStyleSelection,
)
from app.services import audit_service

logger = logging.getLogger("trainermatch.coaching_styles")


class StyleCatalog(str, enum.Enum):
    client = "client"
    trainer = "trainer"


_CATALOG_MODELS = {
    StyleCatalog.client: ClientCoachingStyle,
    StyleCatalog.trainer: TrainerCoachingStyle,
}

StyleModel = ClientCoachingStyle | TrainerCoachingStyle


def normalize_style_key(raw: str | None) -> str:
    """Lower-case, underscore-separated key. Raises ValidationError if empty."""
    key = "_".join((raw or "").strip().lower().split())
    if not key:
        raise ValidationError("style_key must not be empty")
    return key


def _validate_weight(weight: int) -> None:
    if not MIN_WEIGHT <= weight <= MAX_WEIGHT:
        raise ValidationError(
            f"weight must be between {MIN_WEIGHT} and {MAX_WEIGHT}, got {weight}"
        )


async def _key_taken(
    db: AsyncSession,
    model,
    style_key: str,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    stmt = select(model.id).where(model.style_key == style_key)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return (await db.execute(stmt)).first() is not None


# ── Catalogs ──


async def create_style(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    style_key: str,
    label: str,
    actor_id: uuid.UUID,
    description: str | None = None,
    emoji: str | None = None,
    display_order: int = 0,
    ip_address: str | None = None,
) -> StyleModel:
    """Add a style to a catalog. style_key must be unique within the catalog."""
    model = _CATALOG_MODELS[catalog]
    key = normalize_style_key(style_key)
    if not label or not label.strip():
        raise ValidationError("label must not be empty")
    if await _key_taken(db, model, key):
        raise Conflict(f"A {catalog.value} style with key '{key}' already exists")

    style = model(
        style_key=key,
        label=label.strip(),
        description=description,
        emoji=emoji,
        display_order=display_order,
        is_active=True,
    )
    db.add(style)
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coaching_style.created",
        entity_type=model.__name__,
        entity_id=style.id,
        action="create",
        detail={"catalog": catalog.value, "style_key": key},
        ip_address=ip_address,
    )
    return style


async def get_style(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    style_id: uuid.UUID,
) -> StyleModel:
    model = _CATALOG_MODELS[catalog]
    result = await db.execute(select(model).where(model.id == style_id))
    style = result.scalar_one_or_none()
    if style is None:
        raise NotFound(f"{catalog.value.capitalize()} coaching style not found")
    return style


async def update_style(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    style_id: uuid.UUID,
    actor_id: uuid.UUID,
    style_key: str | None = None,
    label: str | None = None,
    description: str | None = None,
    emoji: str | None = None,
    display_order: int | None = None,
    is_active: bool | None = None,
    ip_address: str | None = None,
) -> StyleModel:
    """Edit a style. Only the fields passed (not None) change."""
    model = _CATALOG_MODELS[catalog]
    style = await get_style(db, catalog=catalog, style_id=style_id)
    changes: dict = {}

    if style_key is not None:
        key = normalize_style_key(style_key)
        if key != style.style_key:
            if await _key_taken(db, model, key, exclude_id=style.id):
                raise Conflict(f"A {catalog.value} style with key '{key}' already exists")
            changes["style_key"] = key
    if label is not None:
        if not label.strip():
            raise ValidationError("label must not be empty")
        changes["label"] = label.strip()
    if description is not None:
        changes["description"] = description
    if emoji is not None:
        changes["emoji"] = emoji
    if display_order is not None:
        changes["display_order"] = display_order
    if is_active is not None:
        changes["is_active"] = is_active

    for attr, value in changes.items():
        setattr(style, attr, value)
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coaching_style.updated",
        entity_type=model.__name__,
        entity_id=style.id,
        action="update",
        detail={"catalog": catalog.value, "changed": sorted(changes)},
        ip_address=ip_address,
    )
    return style


async def deactivate_style(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    style_id: uuid.UUID,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> StyleModel:
    """Soft-delete: hide from pickers, keep mappings and selections."""
    return await update_style(
        db,
        catalog=catalog,
        style_id=style_id,
        actor_id=actor_id,
        is_active=False,
        ip_address=ip_address,
    )


async def list_styles(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    include_inactive: bool = False,
) -> list[StyleModel]:
    model = _CATALOG_MODELS[catalog]
    stmt = select(model)
    if not include_inactive:
        stmt = stmt.where(model.is_active == True)  # noqa: E712
    stmt = stmt.order_by(model.display_order.asc(), model.style_key.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ── Mappings ──


async def create_mapping(
    db: AsyncSession,
    *,
    client_style_id: uuid.UUID,
    trainer_style_id: uuid.UUID,
    actor_id: uuid.UUID,
    mapping_type: MappingType = MappingType.primary,
    weight: int | None = None,
    ip_address: str | None = None,
) -> CoachingStyleMapping:
    """Connect a client style to a trainer style.

    Weight defaults from mapping_type (primary 100, secondary 60,
    tertiary 30) but any explicit 0-100 value is accepted.
    """
    await get_style(db, catalog=StyleCatalog.client, style_id=client_style_id)
    await get_style(db, catalog=StyleCatalog.trainer, style_id=trainer_style_id)

    if weight is None:
        weight = default_weight(mapping_type)
    _validate_weight(weight)

    existing = await db.execute(
        select(CoachingStyleMapping.id).where(
            CoachingStyleMapping.client_style_id == client_style_id,
            CoachingStyleMapping.trainer_style_id == trainer_style_id,
        )
    )
    if existing.first() is not None:
        raise Conflict("These two styles are already mapped; edit the existing mapping")

    mapping = CoachingStyleMapping(
        client_style_id=client_style_id,
        trainer_style_id=trainer_style_id,
        weight=weight,
        mapping_type=mapping_type,
    )
    db.add(mapping)
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coaching_style.mapping_created",
        entity_type="CoachingStyleMapping",
        entity_id=mapping.id,
        action="create",
        detail={
            "client_style_id": str(client_style_id),
            "trainer_style_id": str(trainer_style_id),
            "weight": weight,
            "mapping_type": mapping_type.value,
        },
        ip_address=ip_address,
    )
    return mapping


async def get_mapping(db: AsyncSession, mapping_id: uuid.UUID) -> CoachingStyleMapping:
    result = await db.execute(
        select(CoachingStyleMapping).where(CoachingStyleMapping.id == mapping_id)
    )
    mapping = result.scalar_one_or_none()
    if mapping is None:
        raise NotFound("Coaching style mapping not found")
    return mapping


async def update_mapping(
    db: AsyncSession,
    *,
    mapping_id: uuid.UUID,
    actor_id: uuid.UUID,
    weight: int | None = None,
    mapping_type: MappingType | None = None,
    ip_address: str | None = None,
) -> CoachingStyleMapping:
    """Change weight and/or mapping_type independently of each other."""
    mapping = await get_mapping(db, mapping_id)
    if weight is not None:
        _validate_weight(weight)
        mapping.weight = weight
    if mapping_type is not None:
        mapping.mapping_type = mapping_type
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coaching_style.mapping_updated",
        entity_type="CoachingStyleMapping",
        entity_id=mapping.id,
        action="update",
        detail={"weight": mapping.weight, "mapping_type": mapping.mapping_type.value},
        ip_address=ip_address,
    )
    return mapping


async def delete_mapping(
    db: AsyncSession,
    *,
    mapping_id: uuid.UUID,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> None:
    mapping = await get_mapping(db, mapping_id)

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coaching_style.mapping_deleted",
        entity_type="CoachingStyleMapping",
        entity_id=mapping.id,
        action="delete",
        detail={
            "client_style_id": str(mapping.client_style_id),
            "trainer_style_id": str(mapping.trainer_style_id),
        },
        ip_address=ip_address,
    )

    await db.delete(mapping)
    await db.flush()


async def list_mappings(
    db: AsyncSession,
    *,
    client_style_id: uuid.UUID | None = None,
) -> list[CoachingStyleMapping]:
    stmt = select(CoachingStyleMapping)
    if client_style_id is not None:
        stmt = stmt.where(CoachingStyleMapping.client_style_id == client_style_id)
    stmt = stmt.order_by(CoachingStyleMapping.weight.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def load_edges(db: AsyncSession) -> list[MappingEdge]:
    mappings = await list_mappings(db)
    return [
        MappingEdge(
            client_style_id=m.client_style_id,
            trainer_style_id=m.trainer_style_id,
            weight=m.weight,
            mapping_type=m.mapping_type,
        )
        for m in mappings
    ]


async def mapping_warnings(db: AsyncSession) -> dict[str, list[StyleModel]]:
    """Active styles that take no part in matching.

    Unmapped client styles always contribute 0; unmapped trainer styles can
    never earn credit. Neither is an error, both are worth an operator's look.
    """
    mapped_client = set(
        (await db.execute(select(CoachingStyleMapping.client_style_id))).scalars().all()
    )
    mapped_trainer = set(
        (await db.execute(select(CoachingStyleMapping.trainer_style_id))).scalars().all()
    )
    client_styles = await list_styles(db, catalog=StyleCatalog.client)
    trainer_styles = await list_styles(db, catalog=StyleCatalog.trainer)
    return {
        "unmapped_client_styles": [s for s in client_styles if s.id not in mapped_client],
        "unmapped_trainer_styles": [s for s in trainer_styles if s.id not in mapped_trainer],
    }


# ── Declared styles & scoring ──


async def _replace_selection(
    db: AsyncSession,
    *,
    catalog: StyleCatalog,
    owner_id: uuid.UUID,
    style_ids: list[uuid.UUID],
) -> list[uuid.UUID]:
    unique_ids = list(dict.fromkeys(style_ids))
    for style_id in unique_ids:
        style = await get_style(db, catalog=catalog, style_id=style_id)
        if not style.is_active:
            raise ValidationError(f"Style '{style.style_key}' is no longer offered")

    if catalog == StyleCatalog.client:
        await db.execute(
            delete(ClientStyleSelection).where(ClientStyleSelection.client_id == owner_id)
        )
        for style_id in unique_ids:
            db.add(ClientStyleSelection(client_id=owner_id, client_style_id=style_id))
    else:
        await db.execute(
            delete(TrainerStyleSelection).where(TrainerStyleSelection.trainer_id == owner_id)
        )
        for style_id in unique_ids:
            db.add(TrainerStyleSelection(trainer_id=owner_id, trainer_style_id=style_id))
    await db.flush()
    return unique_ids


async def set_client_styles(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    style_ids: list[uuid.UUID],
    ip_address: str | None = None,
) -> list[uuid.UUID]:
    """Replace the client's declared coaching styles."""
    ids = await _replace_selection(
        db, catalog=StyleCatalog.client, owner_id=client_id, style_ids=style_ids
    )
    await audit_service.log_event(
        db,
        user_id=client_id,
        event_type="coaching_style.client_selection_set",
        entity_type="User",
        entity_id=client_id,
        action="set_styles",
        detail={"style_ids": [str(i) for i in ids]},
        ip_address=ip_address,
    )
    return ids


async def set_trainer_styles(
    db: AsyncSession,
    *,
    trainer_id: uuid.UUID,
    style_ids: list[uuid.UUID],
    ip_address: str | None = None,
) -> list[uuid.UUID]:
    """Replace the trainer's declared coaching styles."""
    ids = await _replace_selection(
        db, catalog=StyleCatalog.trainer, owner_id=trainer_id, style_ids=style_ids
    )
    await audit_service.log_event(
        db,
        user_id=trainer_id,
        event_type="coaching_style.trainer_selection_set",
        entity_type="User",
        entity_id=trainer_id,
        action="set_styles",
        detail={"style_ids": [str(i) for i in ids]},
        ip_address=ip_address,
    )
    return ids


async def get_client_style_ids(db: AsyncSession, client_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(
        select(ClientStyleSelection.client_style_id).where(
            ClientStyleSelection.client_id == client_id
        )
    )
    return list(result.scalars().all())


async def get_trainer_style_ids(db: AsyncSession, trainer_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(
        select(TrainerStyleSelection.trainer_style_id).where(
            TrainerStyleSelection.trainer_id == trainer_id
        )
    )
    return list(result.scalars().all())


async def score_trainer_for_client(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> MatchResult:
    client_styles = await get_client_style_ids(db, client_id)
    trainer_styles = await get_trainer_style_ids(db, trainer_id)
    result = match_score(client_styles, trainer_styles, await load_edges(db))
    if result.unmapped_client_styles:
        logger.info(
            "Client %s declared %d unmapped coaching style(s)",
            client_id,
            len(result.unmapped_client_styles),
        )
    return result


async def rank_trainers_for_client(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_ids: list[uuid.UUID],
) -> list[tuple[uuid.UUID, MatchResult]]:
    """Score each trainer for the client, best fit first.

    Mappings are loaded once; ties keep the order of ``trainer_ids``.
    """
    client_styles = await get_client_style_ids(db, client_id)
    edges = await load_edges(db)
    scored = []
    for trainer_id in trainer_ids:
        trainer_styles = await get_trainer_style_ids(db, trainer_id)
        scored.append((trainer_id, match_score(client_styles, trainer_styles, edges)))
    scored.sort(key=lambda item: item[1].score, reverse=True)
    return scored
