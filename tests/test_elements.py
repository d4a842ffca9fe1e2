import pytest

from elements import (
    Element,
    InteractionType,
    calculate_element_distribution,
    calculate_element_interaction,
    element_relation,
    to_element,
)
from text_utils import clean_narrative_text, swap_perspective


def test_same_element_is_harmonious():
    result = calculate_element_interaction(Element.FIRE, Element.FIRE)
    assert result["interaction_type"] == InteractionType.HARMONIOUS
    assert result["cycle"] == "Both Fire"


def test_generative_pair():
    result = calculate_element_interaction("Wood", "Fire")
    assert result["interaction_type"] == InteractionType.GENERATIVE
    assert result["cycle"] == "Wood creates Fire"
    assert result["description"].startswith("Wood feeds Fire: your")


def test_reversed_pair_swaps_perspective():
    result = calculate_element_interaction("fire", "WOOD")
    assert result["interaction_type"] == InteractionType.GENERATIVE
    assert result["cycle"] == "Wood creates Fire"
    assert "their growth-oriented energy fuels your transformative" in result["description"]


def test_controlling_pair():
    result = calculate_element_interaction(Element.WATER, Element.FIRE)
    assert result["interaction_type"] == InteractionType.CONTROLLING
    assert result["cycle"] == "Water controls Fire"


def test_every_pair_classified():
    for a in Element:
        for b in Element:
            result = calculate_element_interaction(a, b)
            assert result["interaction_type"] in set(InteractionType)


def test_element_relation():
    assert element_relation(Element.WOOD, Element.FIRE) == "generates"
    assert element_relation(Element.FIRE, Element.WOOD) == "generated_by"
    assert element_relation(Element.METAL, Element.WOOD) == "controls"
    assert element_relation(Element.WOOD, Element.METAL) == "controlled_by"


def test_unknown_element():
    with pytest.raises(ValueError):
        to_element("Aether")


def test_distribution_without_hour(context_factory):
    # 甲子 丙寅 丙午: Wood 2, Water 1, Fire 3
    ctx = context_factory(year="甲子", month="丙寅", day="丙午", hour=None)
    dist = calculate_element_distribution(ctx)
    assert dist["total"] == 6
    assert dist["counts"] == {"Wood": 2, "Fire": 3, "Earth": 0, "Metal": 0, "Water": 1}
    assert dist["dominant"] == ["Fire"]
    assert dist["missing"] == ["Earth", "Metal"]
    assert dist["balance"] == "very-specialized"


def test_swap_perspective():
    assert swap_perspective("Your fire feeds their earth") == "Their fire feeds your earth"


def test_clean_narrative_text():
    assert clean_narrative_text('"**Bold** and _soft_ words"') == "Bold and soft words"
