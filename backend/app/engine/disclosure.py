"""Progressive disclosure of trainer profile content.

Each ContentCategory unlocks in two steps along the happy path: a teaser
from ``teaser_from`` and full content from ``visible_from``. The resolver is
pure: callers pass the stage in, nothing is read from storage, so a preview
can render any stage without touching the persisted engagement.

RULES holds the defaults. A trainer may override the rule for any category;
the resolver takes those overrides as an argument and falls back to
RULES for categories it does not name.
"""

import enum
from collections.abc import Mapping
from dataclasses import dataclass

from app.core.errors import ValidationError
from app.engine.stage_machine import Stage, is_terminal, stage_rank


class ContentCategory(str, enum.Enum):
    profile_image = "profile_image"
    basic_information = "basic_information"
    specializations = "specializations"
    description_bio = "description_bio"
    stats_ratings = "stats_ratings"
    certifications_qualifications = "certifications_qualifications"
    professional_journey = "professional_journey"
    ways_of_working = "ways_of_working"
    testimonial_images = "testimonial_images"
    gallery_images = "gallery_images"
    pricing_discovery_call = "pricing_discovery_call"
    reviews = "reviews"


class Visibility(str, enum.Enum):
    concealed = "concealed"
    teaser = "teaser"
    visible = "visible"


_ORDER = {Visibility.concealed: 0, Visibility.teaser: 1, Visibility.visible: 2}


@dataclass(frozen=True)
class DisclosureRule:
    visible_from: Stage
    teaser_from: Stage | None = None
    guest_visible: bool = False


RULES: dict[ContentCategory, DisclosureRule] = {
    ContentCategory.profile_image: DisclosureRule(
        visible_from=Stage.liked, teaser_from=Stage.browsing
    ),
    ContentCategory.basic_information: DisclosureRule(
        visible_from=Stage.liked, teaser_from=Stage.browsing
    ),
    ContentCategory.specializations: DisclosureRule(
        visible_from=Stage.browsing, guest_visible=True
    ),
    ContentCategory.description_bio: DisclosureRule(
        visible_from=Stage.liked, teaser_from=Stage.browsing
    ),
    ContentCategory.stats_ratings: DisclosureRule(
        visible_from=Stage.browsing, guest_visible=True
    ),
    ContentCategory.certifications_qualifications: DisclosureRule(
        visible_from=Stage.liked
    ),
    ContentCategory.professional_journey: DisclosureRule(
        visible_from=Stage.matched, teaser_from=Stage.liked
    ),
    ContentCategory.ways_of_working: DisclosureRule(
        visible_from=Stage.matched, teaser_from=Stage.liked
    ),
    ContentCategory.testimonial_images: DisclosureRule(
        visible_from=Stage.discovery_completed, teaser_from=Stage.matched
    ),
    ContentCategory.gallery_images: DisclosureRule(
        visible_from=Stage.discovery_completed, teaser_from=Stage.liked
    ),
    ContentCategory.pricing_discovery_call: DisclosureRule(
        visible_from=Stage.discovery_completed, teaser_from=Stage.matched
    ),
    ContentCategory.reviews: DisclosureRule(
        visible_from=Stage.discovery_completed, teaser_from=Stage.matched
    ),
}

# Placeholder copy for anything short of full visibility.
FALLBACK_TEXT: dict[tuple[ContentCategory, Visibility], str] = {
    (ContentCategory.profile_image, Visibility.teaser): "Photo revealed when you like this coach",
    (ContentCategory.profile_image, Visibility.concealed): "Photo hidden",
    (ContentCategory.basic_information, Visibility.teaser): "First name only",
    (ContentCategory.basic_information, Visibility.concealed): "Coach",
    (ContentCategory.description_bio, Visibility.teaser): "Like this coach to read their full story",
    (ContentCategory.professional_journey, Visibility.teaser): "Their journey is shared once you match",
    (ContentCategory.ways_of_working, Visibility.teaser): "Message this coach to see how they work",
    (ContentCategory.testimonial_images, Visibility.teaser): "Client transformations unlock after a discovery call",
    (ContentCategory.gallery_images, Visibility.teaser): "Gallery unlocks after a discovery call",
    (ContentCategory.pricing_discovery_call, Visibility.teaser): "Available for chat",
    (ContentCategory.reviews, Visibility.teaser): "Reviews unlock after a discovery call",
}

DEFAULT_CONCEALED_TEXT = "Unlocks as you get to know this coach"
DEFAULT_TEASER_TEXT = "Preview"


def _cap(visibility: Visibility, ceiling: Visibility) -> Visibility:
    return visibility if _ORDER[visibility] <= _ORDER[ceiling] else ceiling


def rule_for(
    category: ContentCategory,
    rules: Mapping[ContentCategory, DisclosureRule] | None = None,
) -> DisclosureRule:
    if rules and category in rules:
        return rules[category]
    return RULES[category]


def check_rule(category: ContentCategory, rule: DisclosureRule) -> None:
    """Raise ValidationError unless ``rule`` is a usable override for ``category``.

    The teaser must unlock strictly before full content, and neither may
    unlock at a terminal stage. Guests may only be shown content that is
    fully visible at browsing.
    """
    for stage in (rule.teaser_from, rule.visible_from):
        if stage is None:
            continue
        if is_terminal(stage):
            raise ValidationError(
                f"{category.value} cannot unlock at {stage.value}",
                category=category.value,
            )
    teaser_rank = None if rule.teaser_from is None else stage_rank(rule.teaser_from)
    if teaser_rank is not None and teaser_rank >= stage_rank(rule.visible_from):
        raise ValidationError(
            f"{category.value} teaser must unlock before full content",
            category=category.value,
            teaser_from=rule.teaser_from.value,
            visible_from=rule.visible_from.value,
        )
    if rule.guest_visible and rule.visible_from != Stage.browsing:
        raise ValidationError(
            f"{category.value} can only be shown to guests if it is visible from browsing",
            category=category.value,
            visible_from=rule.visible_from.value,
        )


def visibility_of(
    stage: Stage,
    category: ContentCategory,
    is_guest: bool = False,
    rules: Mapping[ContentCategory, DisclosureRule] | None = None,
) -> Visibility:
    """Visibility of ``category`` for a viewer whose engagement is at ``stage``.

    ``rules`` replaces RULES for the categories it names. declined /
    unmatched resolve as browsing. Guests never see more than a teaser
    unless the category is marked guest-visible.
    """
    rule = rule_for(category, rules)
    effective = Stage.browsing if is_terminal(stage) else stage
    rank = stage_rank(effective)

    if rank >= stage_rank(rule.visible_from):
        result = Visibility.visible
    elif rule.teaser_from is not None and rank >= stage_rank(rule.teaser_from):
        result = Visibility.teaser
    else:
        result = Visibility.concealed

    if is_guest and not rule.guest_visible:
        ceiling = Visibility.teaser if rule.teaser_from == Stage.browsing else Visibility.concealed
        result = _cap(result, ceiling)
    return result


def visibility_map(
    stage: Stage,
    is_guest: bool = False,
    rules: Mapping[ContentCategory, DisclosureRule] | None = None,
) -> dict[ContentCategory, Visibility]:
    return {
        category: visibility_of(stage, category, is_guest, rules) for category in ContentCategory
    }


def unlock_stage(
    category: ContentCategory,
    rules: Mapping[ContentCategory, DisclosureRule] | None = None,
) -> Stage:
    return rule_for(category, rules).visible_from


def fallback_text(category: ContentCategory, visibility: Visibility) -> str | None:
    """Stable placeholder for a category that is not fully visible."""
    if visibility == Visibility.visible:
        return None
    default = DEFAULT_TEASER_TEXT if visibility == Visibility.teaser else DEFAULT_CONCEALED_TEXT
    return FALLBACK_TEXT.get((category, visibility), default)


def display_name(first_name: str, last_name: str | None, visibility: Visibility) -> str:
    """Name as shown at the given basic_information visibility."""
    if visibility == Visibility.visible:
        return " ".join(part for part in (first_name, last_name) if part)
    if visibility == Visibility.teaser:
        return first_name
    return FALLBACK_TEXT[(ContentCategory.basic_information, Visibility.concealed)]
