import pytest

from bazi_utils import (
    FACTORS,
    RELATIONSHIP_WEIGHTS,
    BaziCompatibilityCalculator,
    build_couple_prompt,
    calculate_percentile,
    get_active_special_stars,
    rating_for,
)
from elements import BRANCHES, Element, InteractionType, calculate_element_interaction
from models import SpecialStars


@pytest.fixture
def calc():
    return BaziCompatibilityCalculator()


@pytest.mark.parametrize("relationship", sorted(RELATIONSHIP_WEIGHTS))
def test_weights_sum_to_100(relationship):
    assert sum(RELATIONSHIP_WEIGHTS[relationship]) == 100
    assert len(RELATIONSHIP_WEIGHTS[relationship]) == len(FACTORS)


@pytest.mark.parametrize("branch", BRANCHES)
def test_identical_day_branches(calc, branch):
    assert calc.marriage_palace_score(branch, branch) == 20


def test_marriage_palace_relations(calc):
    assert calc.marriage_palace_score("子", "丑") == 25
    assert calc.marriage_palace_score("子", "午") == 5
    assert calc.marriage_palace_score("子", "未") == 10
    assert calc.marriage_palace_score("申", "辰") == 22
    assert calc.marriage_palace_score("子", "寅") == 15


def test_same_element_cycle_score(calc):
    interaction = calculate_element_interaction(Element.FIRE, Element.FIRE)
    assert interaction["interaction_type"] == InteractionType.HARMONIOUS
    assert calc.element_cycle_score(interaction["interaction_type"]) == 8


def test_strength_balance(calc):
    assert calc.strength_balance_score("Strong", "Weak") == 5
    assert calc.strength_balance_score("Balanced", "Balanced") == 4
    assert calc.strength_balance_score("Strong", "Balanced") == 3
    assert calc.strength_balance_score("Weak", "Weak") == 2


@pytest.mark.parametrize("relationship", ["romantic", "colleague", "family", "friend", "other", "rival"])
def test_score_in_range(calc, fire_context, water_context, relationship):
    for interaction_type in InteractionType:
        result = calc.score(fire_context, water_context, interaction_type, relationship)
        assert 0 <= result.overall <= 100
        assert sum(f.weight for f in result.factors) == 100
        assert result.rating == rating_for(result.overall)


def test_unknown_relationship_uses_midpoint_profile(calc, fire_context, water_context):
    result = calc.score(fire_context, water_context, InteractionType.CONTROLLING, "rival")
    assert result.relationship_type == "other"


def test_perfect_romantic_pair(calc, context_factory):
    # 丙午 is Fire-heavy; the partner needs Fire and is fed by it
    a = context_factory(day="丙子", year="丙午", month="丙午", hour="丁巳",
                        primary=[Element.EARTH], strength="Strong")
    b = context_factory(day="己丑", year="戊辰", month="己未", hour="戊戌",
                        primary=[Element.FIRE, Element.EARTH], strength="Weak")
    result = calc.score(a, b, InteractionType.GENERATIVE, "romantic")
    palace = next(f for f in result.factors if f.name == "Marriage Palace")
    assert palace.raw == 25
    assert result.overall >= 80
    assert result.rating == "Highly Compatible"
    assert result.headline == "A Generative Partnership"


def test_breakdown_categories(calc, fire_context, water_context):
    overall = calc.score(fire_context, water_context, InteractionType.CONTROLLING).overall
    breakdown = calc.score_breakdown(fire_context, water_context, overall)
    labels = [c["label"] for c in breakdown["categories"]]
    assert labels == ["Romance", "Work", "Lifestyle", "Communication"]
    for category in breakdown["categories"]:
        assert 0 <= category["percentage"] <= 100
        assert 0 <= category["percentile"] <= 100
    assert breakdown["total"] == {"score": overall, "max": 100}


def test_pairing_title(calc):
    title = calc.pairing_title("Water", "Fire", InteractionType.CONTROLLING)
    assert title["name"] == "The Dynamic Equilibrium"
    assert title["subtitle"] == "Water meets Fire in controlling energy"


def test_technical_basis_lists_clash(calc, fire_context, water_context):
    interaction = calculate_element_interaction(Element.FIRE, Element.WATER)
    basis = calc.technical_basis(interaction, fire_context, water_context)
    assert "Six Clashes (午子)" in basis["traditional_factors"]
    assert basis["element_interaction"]["interaction_type"] == "Controlling"


def test_active_special_stars():
    stars = get_active_special_stars(SpecialStars(nobleman=["丑", "未"], peach_blossom="卯"))
    assert [s["key"] for s in stars] == ["nobleman", "peach_blossom"]
    assert stars[0]["branches"] == ["丑", "未"]


def test_percentile_at_mean():
    assert calculate_percentile(55, 55, 18) == 50


def test_couple_prompt_mentions_both_people(calc, fire_context, water_context):
    interaction = calculate_element_interaction(Element.FIRE, Element.WATER)
    score = calc.score(fire_context, water_context, interaction["interaction_type"])
    breakdown = calc.score_breakdown(fire_context, water_context, score.overall)
    identity_a = {"title": "The Expressive Catalyst", "code": "Fire-O", "element": "Fire"}
    identity_b = {"title": "The Strategic Navigator", "code": "Water-O", "element": "Water"}
    prompt = build_couple_prompt(identity_a, identity_b, score, breakdown, interaction,
                                 focus_instruction="Write one sentence.")
    assert "The Expressive Catalyst" in prompt
    assert "The Strategic Navigator" in prompt
    assert "Write one sentence." in prompt
