"""
Rarity estimates ("1 in N").

Independent frequency factors are multiplied together. The tables are
presentational estimates, not a calibrated statistical model.
"""
from __future__ import annotations

# Day Master type frequency, percent of population
TYPE_DISTRIBUTIONS = {
    "Fire-I": 2.1,
    "Fire-O": 2.3,
    "Water-I": 2.0,
    "Water-O": 2.2,
    "Wood-I": 2.1,
    "Wood-O": 2.3,
    "Earth-I": 2.4,
    "Earth-O": 2.5,
    "Metal-I": 2.0,
    "Metal-O": 2.2,
}
DEFAULT_TYPE_PERCENTAGE = 2.1

# Pairing table: probabilities, Wood-I is listed higher here
PAIRING_TYPE_PROBABILITIES = {
    "Fire-I": 0.021,
    "Fire-O": 0.023,
    "Water-I": 0.02,
    "Water-O": 0.022,
    "Wood-I": 0.024,
    "Wood-O": 0.023,
    "Earth-I": 0.024,
    "Earth-O": 0.025,
    "Metal-I": 0.02,
    "Metal-O": 0.022,
}
DEFAULT_PAIRING_PROBABILITY = 0.021

# Natal pattern frequency, percent of charts
PATTERN_RARITIES = {
    "shi-shang-sheng-cai": 0.67,
    "cai-zi-ruo-sha": 0.5,
    "sha-yin-xiang-sheng": 0.8,
    "yin-shou-ge": 0.4,
    "cong-ge": 0.3,
    "cong-cai-ge": 0.35,
    "cong-sha-ge": 0.38,
    "hua-ge": 0.45,
    "yang-ren-jia-sha": 0.55,
    "san-qi-sheng-cai": 0.6,
    "guan-yin-xiang-sheng": 0.7,
    "jian-lu-ge": 0.75,
}
DEFAULT_PATTERN_RARITY = 0.5

STAR_PROBABILITIES = {0: 1.0, 1: 0.5, 2: 0.35, 3: 0.25, 4: 0.15}

BALANCED_ELEMENT_PERCENTAGE = 5.0
SINGLE_DOMINANT_PERCENTAGE = 3.5
DUAL_GAP_FACTOR = 0.6

PAIRED_PATTERN_FACTOR = 0.7
PAIRED_STAR_FACTOR = 0.85


def _percentile(probability: float) -> float:
    return round(min(99.99, (1 - probability) * 100), 2)


def element_distribution_percentage(dominant_count: int, missing_count: int) -> float:
    percentage = BALANCED_ELEMENT_PERCENTAGE
    if dominant_count == 1:
        percentage = SINGLE_DOMINANT_PERCENTAGE
    if missing_count >= 2:
        percentage *= DUAL_GAP_FACTOR
    return percentage


def estimate_rarity(type_code: str, patterns, star_count: int, dominant=None, missing=None) -> dict:
    """
    P = P(type) x P(primary pattern, or 1) x P(element distribution) x P(stars)

    :param type_code: Day Master code such as "Fire-I"
    :param patterns: natal pattern ids, primary first
    :param star_count: number of active special stars
    :param dominant: dominant element names of the chart
    :param missing: missing element names of the chart
    :return: dict with one_in, percentile and per-factor descriptions
    """
    dominant = list(dominant or [])
    missing = list(missing or [])
    patterns = list(patterns or [])

    type_percentage = TYPE_DISTRIBUTIONS.get(type_code, DEFAULT_TYPE_PERCENTAGE)
    pattern_rarity = PATTERN_RARITIES.get(patterns[0], DEFAULT_PATTERN_RARITY) if patterns else None
    element_percentage = element_distribution_percentage(len(dominant), len(missing))
    star_probability = STAR_PROBABILITIES[min(max(star_count, 0), 4)]

    probability = (
        type_percentage / 100
        * (pattern_rarity / 100 if pattern_rarity is not None else 1)
        * element_percentage / 100
        * star_probability
    )
    one_in = round(1 / probability)

    lead = dominant[0] if dominant else None
    if len(missing) >= 2:
        element_description = (
            f"Charts with {lead}-dominance and dual element gaps appear in "
            f"{element_percentage:.1f}% of the population"
        )
    else:
        element_description = f"{lead or 'Balanced'}-dominant charts appear in {element_percentage:.1f}% of the population"

    return {
        "one_in": one_in,
        "percentile": _percentile(probability),
        "type": {
            "percentage": type_percentage,
            "description": f"{type_percentage}% of people share the {type_code} Day Master type",
        },
        "pattern": {
            "rarity": pattern_rarity,
            "description": f"1 in {round(100 / pattern_rarity)} charts",
        } if pattern_rarity is not None else None,
        "element_distribution": {
            "percentage": element_percentage,
            "description": element_description,
        },
        "description": (
            f"Your exact combination of {type_code} + {lead or 'balanced'} elements"
            f"{' + special patterns' if patterns else ''} is approximately 1 in {one_in:,}"
        ),
    }


def estimate_pairing_rarity(code_a: str, code_b: str, both_have_patterns: bool, both_have_stars: bool) -> dict:
    probability = (
        PAIRING_TYPE_PROBABILITIES.get(code_a, DEFAULT_PAIRING_PROBABILITY)
        * PAIRING_TYPE_PROBABILITIES.get(code_b, DEFAULT_PAIRING_PROBABILITY)
    )
    if both_have_patterns:
        probability *= PAIRED_PATTERN_FACTOR
    if both_have_stars:
        probability *= PAIRED_STAR_FACTOR

    one_in = round(1 / probability)
    return {
        "one_in": one_in,
        "percentile": _percentile(probability),
        "description": (
            f"This type combination appears in approximately 1 in {one_in:,} pairings (statistical rarity)"
        ),
    }
