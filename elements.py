"""
五行 (Five Elements) tables and pure helpers.

Stem/branch lookups, the generative and controlling cycles, pairwise element
interaction and per-chart element distribution.
"""
from __future__ import annotations

from enum import Enum

from text_utils import swap_perspective


class Element(str, Enum):
    WOOD = "Wood"
    FIRE = "Fire"
    EARTH = "Earth"
    METAL = "Metal"
    WATER = "Water"


class Polarity(str, Enum):
    YIN = "Yin"
    YANG = "Yang"


class InteractionType(str, Enum):
    GENERATIVE = "Generative"
    CONTROLLING = "Controlling"
    HARMONIOUS = "Harmonious"
    CONFLICTING = "Conflicting"
    NEUTRAL = "Neutral"


ELEMENT_ORDER = [Element.WOOD, Element.FIRE, Element.EARTH, Element.METAL, Element.WATER]

# 相生: Key 生 Value
GENERATES = {
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
}

# 相克: Key 克 Value
CONTROLS = {
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
    Element.METAL: Element.WOOD,
}

STEMS = ["甲", "乙", "丙", "丁", "戊", "己", "庚", "辛", "壬", "癸"]
BRANCHES = ["子", "丑", "寅", "卯", "辰", "巳", "午", "未", "申", "酉", "戌", "亥"]

# 天干: 阳干在偶数位
STEM_INFO = {
    "甲": (Element.WOOD, Polarity.YANG),
    "乙": (Element.WOOD, Polarity.YIN),
    "丙": (Element.FIRE, Polarity.YANG),
    "丁": (Element.FIRE, Polarity.YIN),
    "戊": (Element.EARTH, Polarity.YANG),
    "己": (Element.EARTH, Polarity.YIN),
    "庚": (Element.METAL, Polarity.YANG),
    "辛": (Element.METAL, Polarity.YIN),
    "壬": (Element.WATER, Polarity.YANG),
    "癸": (Element.WATER, Polarity.YIN),
}

BRANCH_INFO = {
    "子": (Element.WATER, "Rat"),
    "丑": (Element.EARTH, "Ox"),
    "寅": (Element.WOOD, "Tiger"),
    "卯": (Element.WOOD, "Rabbit"),
    "辰": (Element.EARTH, "Dragon"),
    "巳": (Element.FIRE, "Snake"),
    "午": (Element.FIRE, "Horse"),
    "未": (Element.EARTH, "Goat"),
    "申": (Element.METAL, "Monkey"),
    "酉": (Element.METAL, "Rooster"),
    "戌": (Element.EARTH, "Dog"),
    "亥": (Element.WATER, "Pig"),
}

# 地支藏干 [本气, 中气, 余气]
HIDDEN_STEMS = {
    "子": ["癸"],
    "丑": ["己", "癸", "辛"],
    "寅": ["甲", "丙", "戊"],
    "卯": ["乙"],
    "辰": ["戊", "乙", "癸"],
    "巳": ["丙", "戊", "庚"],
    "午": ["丁", "己"],
    "未": ["己", "丁", "乙"],
    "申": ["庚", "壬", "戊"],
    "酉": ["辛"],
    "戌": ["戊", "辛", "丁"],
    "亥": ["壬", "甲"],
}

_GENERATIVE_DESCRIPTIONS = {
    (Element.WOOD, Element.FIRE): (
        "Wood feeds Fire: your growth-oriented energy fuels their transformative intensity, "
        "creating a natural synergy where expansion meets expression."
    ),
    (Element.FIRE, Element.EARTH): (
        "Fire creates Earth: like focused heat shaping clay, your intensity produces their "
        "stability and tangible results."
    ),
    (Element.EARTH, Element.METAL): (
        "Earth creates Metal: your grounding presence provides the foundation for their "
        "precision and structured thinking."
    ),
    (Element.METAL, Element.WATER): (
        "Metal creates Water: your clarity and discipline generate their adaptability and "
        "flowing insights."
    ),
    (Element.WATER, Element.WOOD): (
        "Water nourishes Wood: your adaptability and depth feed their natural growth and "
        "creative expansion."
    ),
}

_CONTROLLING_DESCRIPTIONS = {
    (Element.WOOD, Element.EARTH): (
        "Wood controls Earth: your expansive energy can overwhelm their need for stability, "
        "creating tension between growth and grounding."
    ),
    (Element.EARTH, Element.WATER): (
        "Earth controls Water: your stability contains their flow, which can feel either "
        "grounding or restrictive depending on balance."
    ),
    (Element.WATER, Element.FIRE): (
        "Water controls Fire: your adaptability can extinguish their intensity, creating "
        "either tempering balance or frustrating conflict."
    ),
    (Element.FIRE, Element.METAL): (
        "Fire controls Metal: your intensity refines their structure, which can create "
        "either transformation or tension."
    ),
    (Element.METAL, Element.WOOD): (
        "Metal controls Wood: your precision cuts through their expansion, creating either "
        "focus or frustration."
    ),
}


def to_element(value) -> Element:
    """Accept an Element, or a name in any case ("fire", "FIRE", "Fire")."""
    if isinstance(value, Element):
        return value
    try:
        return Element(str(value).strip().title())
    except ValueError:
        raise ValueError(f"Unknown element: {value!r}") from None


def stem_element(stem: str) -> Element:
    return STEM_INFO[stem][0]


def branch_element(branch: str) -> Element:
    return BRANCH_INFO[branch][0]


def element_relation(a: Element, b: Element) -> str:
    """
    Relation of ``a`` towards ``b`` in the five-element cycle.

    :return: "same", "generates", "generated_by", "controls" or "controlled_by"
    """
    if a == b:
        return "same"
    if GENERATES.get(a) == b:
        return "generates"
    if GENERATES.get(b) == a:
        return "generated_by"
    if CONTROLS.get(a) == b:
        return "controls"
    if CONTROLS.get(b) == a:
        return "controlled_by"
    raise ValueError(f"No cycle relation between {a} and {b}")


def calculate_element_interaction(element1, element2) -> dict:
    """
    Classify the interaction between two people's Day Master elements.

    Same element is Harmonious. Otherwise the ordered pair is looked up in the
    generative, then controlling tables; a reversed hit keeps the type but
    flips the your/their wording of the description.
    """
    e1 = to_element(element1)
    e2 = to_element(element2)
    result = {"person1_element": e1.value, "person2_element": e2.value}

    if e1 == e2:
        result.update(
            interaction_type=InteractionType.HARMONIOUS,
            cycle=f"Both {e1.value}",
            description=(
                f"You share the same {e1.value} energy, creating natural understanding and "
                "shared motivation. Like two forces of the same nature, you amplify each "
                "other's core drive."
            ),
        )
        return result

    for table, verb, kind in (
        (_GENERATIVE_DESCRIPTIONS, "creates", InteractionType.GENERATIVE),
        (_CONTROLLING_DESCRIPTIONS, "controls", InteractionType.CONTROLLING),
    ):
        if (e1, e2) in table:
            result.update(
                interaction_type=kind,
                cycle=f"{e1.value} {verb} {e2.value}",
                description=table[(e1, e2)],
            )
            return result
        if (e2, e1) in table:
            result.update(
                interaction_type=kind,
                cycle=f"{e2.value} {verb} {e1.value}",
                description=swap_perspective(table[(e2, e1)]),
            )
            return result

    result.update(
        interaction_type=InteractionType.NEUTRAL,
        cycle=f"{e1.value} and {e2.value}",
        description=(
            f"Your {e1.value} and their {e2.value} energies have a neutral interaction, "
            "creating a balanced dynamic without strong tension or synergy."
        ),
    )
    return result


def calculate_element_distribution(user_context) -> dict:
    """
    统计命盘五行分布 (天干 + 地支本气)

    :param user_context: UserContext; the hour pillar is skipped when unknown
    :return: dict with counts, percentages, dominant, missing, balance, total
    """
    counts = {element: 0 for element in ELEMENT_ORDER}
    for pillar in user_context.pillars():
        counts[pillar.stem.element] += 1
        counts[pillar.branch.element] += 1

    total = sum(counts.values())
    max_count = max(counts.values())
    percentages = {
        element.value: round(count / total * 100, 1) if total else 0.0
        for element, count in counts.items()
    }
    dominant = [element.value for element in ELEMENT_ORDER if counts[element] == max_count and max_count > 0]
    missing = [element.value for element in ELEMENT_ORDER if counts[element] == 0]

    if total and max_count >= total / 2:
        balance = "very-specialized"
    elif total and max_count >= total / 3:
        balance = "specialized"
    else:
        balance = "balanced"

    return {
        "counts": {element.value: count for element, count in counts.items()},
        "percentages": percentages,
        "dominant": dominant,
        "missing": missing,
        "balance": balance,
        "total": total,
    }
