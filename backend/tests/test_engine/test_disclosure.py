"""Disclosure resolver tests."""

import pytest

from app.core.errors import ValidationError
from app.engine.disclosure import (
    ContentCategory,
    DisclosureRule,
    RULES,
    Visibility,
    check_rule,
    display_name,
    fallback_text,
    unlock_stage,
    visibility_map,
    visibility_of,
)
from app.engine.stage_machine import HAPPY_PATH, Stage

_ORDER = {Visibility.concealed: 0, Visibility.teaser: 1, Visibility.visible: 2}


def test_every_category_has_a_rule():
    assert set(RULES) == set(ContentCategory)


@pytest.mark.parametrize("category", list(ContentCategory))
def test_visibility_is_monotone_along_happy_path(category):
    previous = Visibility.concealed
    for stage in HAPPY_PATH:
        current = visibility_of(stage, category)
        assert _ORDER[current] >= _ORDER[previous], (category, stage)
        previous = current


@pytest.mark.parametrize("category", list(ContentCategory))
def test_everything_visible_to_active_client(category):
    assert visibility_of(Stage.active_client, category) == Visibility.visible


def test_pricing_teaser_reads_available_for_chat():
    """Pricing at matched shows the teaser copy, never the real price."""
    visibility = visibility_of(Stage.matched, ContentCategory.pricing_discovery_call)
    assert visibility == Visibility.teaser
    assert fallback_text(ContentCategory.pricing_discovery_call, visibility) == "Available for chat"


def test_pricing_visible_after_discovery():
    assert (
        visibility_of(Stage.discovery_completed, ContentCategory.pricing_discovery_call)
        == Visibility.visible
    )


@pytest.mark.parametrize("stage", [Stage.declined, Stage.unmatched])
def test_terminal_stages_resolve_as_browsing(stage):
    assert visibility_map(stage) == visibility_map(Stage.browsing)


def test_guest_caps():
    # Guest-visible categories are unaffected
    assert visibility_of(Stage.browsing, ContentCategory.specializations, is_guest=True) == Visibility.visible
    # Everything else tops out at a teaser, or concealed if no browsing teaser exists
    assert visibility_of(Stage.active_client, ContentCategory.basic_information, is_guest=True) == Visibility.teaser
    assert visibility_of(Stage.active_client, ContentCategory.reviews, is_guest=True) == Visibility.concealed


def test_guest_never_sees_more_than_member():
    for stage in HAPPY_PATH:
        for category in ContentCategory:
            assert _ORDER[visibility_of(stage, category, is_guest=True)] <= _ORDER[
                visibility_of(stage, category)
            ]


def test_fallback_text_is_stable_and_absent_when_visible():
    for category in ContentCategory:
        assert fallback_text(category, Visibility.visible) is None
        for visibility in (Visibility.teaser, Visibility.concealed):
            text = fallback_text(category, visibility)
            assert text
            assert text == fallback_text(category, visibility)


def test_display_name():
    assert display_name("Jamie", "Fox", Visibility.visible) == "Jamie Fox"
    assert display_name("Jamie", "Fox", Visibility.teaser) == "Jamie"
    assert display_name("Jamie", "Fox", Visibility.concealed) == "Coach"


def test_unlock_stage():
    assert unlock_stage(ContentCategory.professional_journey) == Stage.matched
    assert unlock_stage(ContentCategory.gallery_images) == Stage.discovery_completed


def test_like_reveals_basic_information_but_not_pricing():
    assert visibility_of(Stage.liked, ContentCategory.basic_information) == Visibility.visible
    assert visibility_of(Stage.liked, ContentCategory.pricing_discovery_call) == Visibility.concealed


def test_rules_override_only_the_categories_they_name():
    pricing = ContentCategory.pricing_discovery_call
    rules = {pricing: DisclosureRule(visible_from=Stage.matched, teaser_from=Stage.liked)}
    assert visibility_of(Stage.liked, pricing, rules=rules) == Visibility.teaser
    assert visibility_of(Stage.matched, pricing, rules=rules) == Visibility.visible
    assert unlock_stage(pricing, rules) == Stage.matched
    assert visibility_map(Stage.matched, rules=rules)[ContentCategory.reviews] == Visibility.teaser
    # The defaults themselves are untouched
    assert visibility_of(Stage.matched, pricing) == Visibility.teaser


def test_guest_cap_applies_to_overrides():
    rules = {
        ContentCategory.description_bio: DisclosureRule(visible_from=Stage.browsing),
        ContentCategory.reviews: DisclosureRule(visible_from=Stage.browsing, guest_visible=True),
    }
    bio = ContentCategory.description_bio
    assert visibility_of(Stage.browsing, bio, rules=rules) == Visibility.visible
    assert visibility_of(Stage.browsing, bio, is_guest=True, rules=rules) == Visibility.concealed
    assert visibility_of(
        Stage.browsing, ContentCategory.reviews, is_guest=True, rules=rules
    ) == Visibility.visible


@pytest.mark.parametrize("category", list(ContentCategory))
def test_default_rules_pass_check(category):
    check_rule(category, RULES[category])


@pytest.mark.parametrize("rule", [
    DisclosureRule(visible_from=Stage.liked, teaser_from=Stage.matched),
    DisclosureRule(visible_from=Stage.liked, teaser_from=Stage.liked),
    DisclosureRule(visible_from=Stage.declined),
    DisclosureRule(visible_from=Stage.agreed, teaser_from=Stage.unmatched),
    DisclosureRule(visible_from=Stage.liked, guest_visible=True),
])
def test_check_rule_rejects(rule):
    with pytest.raises(ValidationError) as exc_info:
        check_rule(ContentCategory.reviews, rule)
    assert exc_info.value.context["category"] == "reviews"


@pytest.mark.parametrize("rule", [
    DisclosureRule(visible_from=Stage.browsing, guest_visible=True),
    DisclosureRule(visible_from=Stage.active_client, teaser_from=Stage.browsing),
])
def test_overridden_visibility_stays_monotone(rule):
    check_rule(ContentCategory.gallery_images, rule)
    rules = {ContentCategory.gallery_images: rule}
    previous = Visibility.concealed
    for stage in HAPPY_PATH:
        current = visibility_of(stage, ContentCategory.gallery_images, rules=rules)
        assert _ORDER[current] >= _ORDER[previous], stage
        previous = current
