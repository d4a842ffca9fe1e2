"""
Daily compatibility adjustment.

Produces a delta for one specific day, not an absolute score: a pair whose
baseline is Challenging can still have an A+ day.
"""
from __future__ import annotations

from typing import NamedTuple, Optional

from elements import InteractionType, calculate_element_interaction, to_element

# 单方喜忌 ±3, 双方合计 ±6
FAVORABILITY_POINTS = 3

CROSS_INTERACTION_POINTS = {
    InteractionType.GENERATIVE: 4,
    InteractionType.HARMONIOUS: 2,
    InteractionType.NEUTRAL: 0,
    InteractionType.CONTROLLING: -2,
    InteractionType.CONFLICTING: -4,
}

# Generative > Harmonious > Neutral > Controlling > Conflicting
_INTERACTION_RANK = {
    InteractionType.GENERATIVE: 2,
    InteractionType.HARMONIOUS: 1,
    InteractionType.NEUTRAL: 0,
    InteractionType.CONTROLLING: -1,
    InteractionType.CONFLICTING: -2,
}

# rank distance -> points
ALIGNMENT_POINTS = {0: 3, 1: 2, 2: -2, 3: -2, 4: -3}

LETTER_GRADES = [
    (10, "A+"),
    (7, "A"),
    (4, "B+"),
    (1, "B"),
    (-1, "C"),
    (-4, "D+"),
    (-7, "D"),
]


class DailyAdjustment(NamedTuple):
    delta: int
    letter_grade: str
    today_interaction: InteractionType
    favorability_points: int
    interaction_points: int
    alignment_points: int


def letter_grade(delta: int) -> str:
    for threshold, grade in LETTER_GRADES:
        if delta >= threshold:
            return grade
    return "F"


def alignment_points(today: InteractionType, base: InteractionType) -> int:
    distance = abs(_INTERACTION_RANK[InteractionType(today)] - _INTERACTION_RANK[InteractionType(base)])
    return ALIGNMENT_POINTS[distance]


def daily_adjustment(
    today_element_a,
    today_element_b,
    base_interaction,
    favorability,
    today_interaction: Optional[InteractionType] = None,
) -> DailyAdjustment:
    """
    Score how favorable today is for the pair.

    :param today_element_a: element today brings to person A (day stem in A's timezone)
    :param today_element_b: element today brings to person B
    :param base_interaction: InteractionType of the pair's Day Masters
    :param favorability: (a, b) with each in {+1, 0, -1}; today's element
        favorable, neutral or unfavorable for that person
    :param today_interaction: override for today's cross interaction, e.g.
        Conflicting when today's branch clashes a Day branch
    """
    if today_interaction is None:
        today_interaction = calculate_element_interaction(
            to_element(today_element_a), to_element(today_element_b)
        )["interaction_type"]
    today_interaction = InteractionType(today_interaction)

    flag_a, flag_b = favorability
    favor = FAVORABILITY_POINTS * (_sign(flag_a) + _sign(flag_b))
    cross = CROSS_INTERACTION_POINTS[today_interaction]
    align = alignment_points(today_interaction, base_interaction)

    delta = favor + cross + align
    return DailyAdjustment(
        delta=delta,
        letter_grade=letter_grade(delta),
        today_interaction=today_interaction,
        favorability_points=favor,
        interaction_points=cross,
        alignment_points=align,
    )


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)
