"""
八字工具类 - 合盘评分 (compatibility scoring)

Five independent sub-scores are rescaled to a relationship-specific weight
profile and summed into a 0-100 score with a rating and headline.
"""
from __future__ import annotations

import math

from elements import InteractionType, calculate_element_distribution, calculate_element_interaction, to_element
from models import CompatibilityFactorScore, CompatibilityScore

# (name, max) in scoring order
FACTORS = [
    ("Ten Gods", 40),
    ("Marriage Palace", 25),
    ("Favorable Elements", 20),
    ("Element Cycle", 10),
    ("Strength Balance", 5),
]

_MIDPOINT_WEIGHTS = (45, 15, 25, 10, 5)

# 关系类型权重 (each profile sums to 100)
RELATIONSHIP_WEIGHTS = {
    "romantic": (40, 25, 20, 10, 5),
    "colleague": (50, 5, 30, 10, 5),
    "family": _MIDPOINT_WEIGHTS,
    "friend": _MIDPOINT_WEIGHTS,
    "other": _MIDPOINT_WEIGHTS,
}

RATINGS = [
    (80, "Highly Compatible"),
    (65, "Compatible"),
    (50, "Moderately Compatible"),
    (35, "Challenging"),
]

HEADLINES = {
    InteractionType.GENERATIVE: "A Generative Partnership",
    InteractionType.HARMONIOUS: "A Harmonious Connection",
    InteractionType.CONTROLLING: "A Dynamic Tension",
    InteractionType.CONFLICTING: "A Transformative Challenge",
    InteractionType.NEUTRAL: "A Balanced Dynamic",
}

CYCLE_SCORES = {
    InteractionType.GENERATIVE: 10,
    InteractionType.HARMONIOUS: 8,
    InteractionType.NEUTRAL: 5,
    InteractionType.CONTROLLING: 3,
    InteractionType.CONFLICTING: 0,
}

PAIRING_NAMES = {
    "Fire-Wood": "Catalytic Partnership",
    "Fire-Earth": "Transformative Force",
    "Fire-Metal": "Refining Dynamic",
    "Fire-Water": "Balancing Act",
    "Fire-Fire": "Resonant Energy",
    "Wood-Fire": "Growth Catalyst",
    "Wood-Earth": "Rooted Foundation",
    "Wood-Metal": "Structured Evolution",
    "Wood-Water": "Nourishing Flow",
    "Wood-Wood": "Expansive Alliance",
    "Earth-Fire": "Grounded Transformation",
    "Earth-Wood": "Creative Growth",
    "Earth-Metal": "Refined Structure",
    "Earth-Water": "Adaptive Foundation",
    "Earth-Earth": "Solid Ground",
    "Metal-Fire": "Tempered Edge",
    "Metal-Wood": "Precision Innovation",
    "Metal-Earth": "Structured Clarity",
    "Metal-Water": "Fluid Precision",
    "Metal-Metal": "Clear Alignment",
    "Water-Fire": "Dynamic Equilibrium",
    "Water-Wood": "Flowing Growth",
    "Water-Earth": "Contained Wisdom",
    "Water-Metal": "Strategic Flow",
    "Water-Water": "Deep Resonance",
}

# (mean, sd) of each category across pairings
CATEGORY_DISTRIBUTIONS = {
    "Overall": (55, 18),
    "Romance": (13, 6),
    "Work": (24, 8),
    "Lifestyle": (15, 5),
    "Communication": (5, 2),
}

SPECIAL_STAR_TEMPLATES = {
    "nobleman": ("Nobleman", "天乙贵人", "👑"),
    "intelligence": ("Intelligence Star", "文昌", "📚"),
    "sky_horse": ("Sky Horse", "驿马", "🏇"),
    "peach_blossom": ("Peach Blossom", "桃花", "🌸"),
}


def get_active_special_stars(special_stars) -> list:
    """Stars present in a chart, as display dicts."""
    active = []
    for key, (name, chinese_name, emoji) in SPECIAL_STAR_TEMPLATES.items():
        value = getattr(special_stars, key)
        if value:
            branches = value if isinstance(value, list) else [value]
            active.append({
                "key": key,
                "name": name,
                "chinese_name": chinese_name,
                "emoji": emoji,
                "branches": branches,
            })
    return active


def calculate_percentile(score: float, mean: float, std_dev: float) -> int:
    """Percentile of ``score`` under a normal distribution."""
    z = (score - mean) / std_dev
    return round((1 + math.erf(z / math.sqrt(2))) / 2 * 100)


def percentile_description(percentile: int) -> str:
    if percentile >= 95:
        return "Exceptional"
    if percentile >= 85:
        return "Excellent"
    if percentile >= 70:
        return "Strong"
    if percentile >= 50:
        return "Above average"
    if percentile >= 30:
        return "Average"
    return "Below average"


def rating_for(score: int) -> str:
    for threshold, rating in RATINGS:
        if score >= threshold:
            return rating
    return "Very Challenging"


class BaziCompatibilityCalculator:
    """
    八字合盘计算器 - 分析两人之间的"化学反应"
    """

    def __init__(self):
        # 天干五合
        self.stem_combos = {
            frozenset(["甲", "己"]), frozenset(["乙", "庚"]), frozenset(["丙", "辛"]),
            frozenset(["丁", "壬"]), frozenset(["戊", "癸"])
        }
        # 地支六合
        self.branch_combos = {
            frozenset(["子", "丑"]), frozenset(["寅", "亥"]), frozenset(["卯", "戌"]),
            frozenset(["辰", "酉"]), frozenset(["巳", "申"]), frozenset(["午", "未"])
        }
        # 地支六冲
        self.branch_clashes = {
            frozenset(["子", "午"]), frozenset(["丑", "未"]), frozenset(["寅", "申"]),
            frozenset(["卯", "酉"]), frozenset(["辰", "戌"]), frozenset(["巳", "亥"])
        }
        # 地支六害
        self.branch_harms = {
            frozenset(["子", "未"]), frozenset(["丑", "午"]), frozenset(["寅", "巳"]),
            frozenset(["卯", "辰"]), frozenset(["申", "亥"]), frozenset(["酉", "戌"])
        }
        # 地支三合: 水, 木, 火, 金
        self.trinities = [
            {"申", "子", "辰"}, {"亥", "卯", "未"}, {"寅", "午", "戌"}, {"巳", "酉", "丑"}
        ]

    # ================== 五项子评分 ==================

    def ten_gods_harmony(self, ctx_a, ctx_b) -> int:
        """Does each chart's dominant element feed the other's needs (0-40)."""
        points = 20
        dominant_a = _dominant_element(ctx_a)
        dominant_b = _dominant_element(ctx_b)
        fav_a, fav_b = ctx_a.favorable_elements, ctx_b.favorable_elements

        if dominant_a and dominant_a in fav_b.primary:
            points += 10
        if dominant_b and dominant_b in fav_a.primary:
            points += 10
        if dominant_a and dominant_a in fav_b.unfavorable:
            points -= 10
        if dominant_b and dominant_b in fav_a.unfavorable:
            points -= 10
        return max(0, min(40, points))

    def marriage_palace_score(self, branch_a: str, branch_b: str) -> int:
        """日支 (夫妻宫) 关系 (0-25)"""
        if branch_a == branch_b:
            return 20
        pair = frozenset([branch_a, branch_b])
        if pair in self.branch_combos:
            return 25
        if pair in self.branch_clashes:
            return 5
        if pair in self.branch_harms:
            return 10
        for trinity in self.trinities:
            if branch_a in trinity and branch_b in trinity:
                return 22
        return 15

    def favorable_element_match(self, ctx_a, ctx_b) -> int:
        """Shared favorable elements minus cross conflicts (0-20)."""
        fav_a, fav_b = ctx_a.favorable_elements, ctx_b.favorable_elements
        points = 10
        shared = sum(1 for e in fav_a.primary if e in fav_b.primary)
        points += min(10, shared * 5)
        conflicts = (
            sum(1 for e in fav_a.primary if e in fav_b.unfavorable)
            + sum(1 for e in fav_b.primary if e in fav_a.unfavorable)
        )
        points -= conflicts * 5
        return max(0, min(20, points))

    def element_cycle_score(self, interaction_type) -> int:
        return CYCLE_SCORES.get(InteractionType(interaction_type), 5)

    def strength_balance_score(self, strength_a: str, strength_b: str) -> int:
        """身强身弱互补 (0-5)"""
        if {strength_a, strength_b} == {"Strong", "Weak"}:
            return 5
        if strength_a == "Balanced" and strength_b == "Balanced":
            return 4
        if "Balanced" in (strength_a, strength_b):
            return 3
        return 2

    def raw_scores(self, ctx_a, ctx_b, interaction_type) -> list:
        return [
            self.ten_gods_harmony(ctx_a, ctx_b),
            self.marriage_palace_score(ctx_a.personal.branch.character, ctx_b.personal.branch.character),
            self.favorable_element_match(ctx_a, ctx_b),
            self.element_cycle_score(interaction_type),
            self.strength_balance_score(ctx_a.chart_strength.strength, ctx_b.chart_strength.strength),
        ]

    # ================== 综合评分 ==================

    def score(self, ctx_a, ctx_b, interaction_type, relationship_type: str = "romantic") -> CompatibilityScore:
        """
        综合评分

        :param ctx_a: UserContext of the first person
        :param ctx_b: UserContext of the second person
        :param interaction_type: InteractionType of the two Day Master elements
        :param relationship_type: romantic, family, friend, colleague or other
        :return: CompatibilityScore (overall 0-100, rating, headline, factors)
        """
        interaction_type = InteractionType(interaction_type)
        relationship_type = relationship_type if relationship_type in RELATIONSHIP_WEIGHTS else "other"
        weights = RELATIONSHIP_WEIGHTS[relationship_type]

        factors = []
        total = 0.0
        for (name, maximum), raw, weight in zip(FACTORS, self.raw_scores(ctx_a, ctx_b, interaction_type), weights):
            weighted = raw / maximum * weight
            total += weighted
            factors.append(CompatibilityFactorScore(
                name=name, raw=raw, max=maximum, weight=weight, weighted=round(weighted, 2)
            ))

        overall = int(round(max(0.0, min(100.0, total))))
        return CompatibilityScore(
            overall=overall,
            rating=rating_for(overall),
            headline=HEADLINES.get(interaction_type, "A Unique Pairing"),
            relationship_type=relationship_type,
            factors=factors,
        )

    # ================== 报告辅助 ==================

    def score_breakdown(self, ctx_a, ctx_b, overall: int) -> dict:
        """
        Recast the raw sub-scores as four everyday categories with percentiles.

        Romance = Marriage Palace, Work = Ten Gods, Lifestyle = Favorable
        Elements + Strength Balance, Communication = Element Cycle.
        """
        interaction = calculate_element_interaction(ctx_a.day_master.element, ctx_b.day_master.element)
        ten_gods, palace, favorable, cycle, balance = self.raw_scores(
            ctx_a, ctx_b, interaction["interaction_type"]
        )
        lifestyle = favorable + balance

        rows = [
            ("Romance", "💕", palace, 25, "Emotional chemistry & attraction",
             f"Marriage Palace (日支) interaction: {ctx_a.personal.label} × {ctx_b.personal.label}"),
            ("Work", "💼", ten_gods, 40, "Collaboration & shared goals",
             "Ten Gods (十神) harmony - how your elements relate in career and resource aspects"),
            ("Lifestyle", "🏡", lifestyle, 25, "Daily habits & values",
             "Element Match (favorable elements) + Chart Balance (Strong/Weak/Balanced compatibility)"),
            ("Communication", "⚡", cycle, 10, "How you naturally interact",
             f"Five Element cycle (五行生克): {interaction['cycle']}"),
        ]
        categories = []
        for label, emoji, value, maximum, description, basis in rows:
            mean, sd = CATEGORY_DISTRIBUTIONS[label]
            categories.append({
                "label": label,
                "emoji": emoji,
                "score": value,
                "max": maximum,
                "percentage": round(value / maximum * 100),
                "percentile": calculate_percentile(value, mean, sd),
                "description": description,
                "technical_basis": basis,
            })

        ordered = sorted(categories, key=lambda c: c["percentage"], reverse=True)
        strongest, weakest = ordered[0], ordered[-1]
        overall_percentile = calculate_percentile(overall, *CATEGORY_DISTRIBUTIONS["Overall"])

        text = (
            f"Your strongest area is {strongest['label']} ({strongest['percentage']}%, "
            f"top {100 - strongest['percentile']}%), "
            f"{percentile_description(strongest['percentile']).lower()} compatibility. "
            f"Your {weakest['label']} score ({weakest['percentage']}%, top {100 - weakest['percentile']}%) "
            f"is {percentile_description(weakest['percentile']).lower()}"
            f"{': focus here for growth' if weakest['percentile'] < 50 else ' as well'}."
        )
        return {
            "summary": {
                "overall": {
                    "score": overall,
                    "percentile": overall_percentile,
                    "description": f"Better than {overall_percentile}% of pairings",
                },
                "strongest": _summary_entry(strongest),
                "weakest": _summary_entry(weakest),
                "text": text,
            },
            "categories": categories,
            "total": {"score": overall, "max": 100},
        }

    def pairing_title(self, element_a: str, element_b: str, interaction_type) -> dict:
        base_name = (
            PAIRING_NAMES.get(f"{element_a}-{element_b}")
            or PAIRING_NAMES.get(f"{element_b}-{element_a}")
            or "Unique Dynamic"
        )
        return {
            "name": f"The {base_name}",
            "subtitle": f"{element_a} meets {element_b} in {InteractionType(interaction_type).value.lower()} energy",
        }

    def technical_basis(self, interaction: dict, ctx_a, ctx_b) -> dict:
        """Element interaction plus the traditional factors both charts share."""
        factors = []
        branch_a, branch_b = ctx_a.personal.branch.character, ctx_b.personal.branch.character
        stem_a, stem_b = ctx_a.day_master.character, ctx_b.day_master.character

        if frozenset([stem_a, stem_b]) in self.stem_combos:
            factors.append(f"Stem Combination ({stem_a}{stem_b})")
        if frozenset([branch_a, branch_b]) in self.branch_combos:
            factors.append(f"Six Combinations ({branch_a}{branch_b})")
        elif frozenset([branch_a, branch_b]) in self.branch_clashes:
            factors.append(f"Six Clashes ({branch_a}{branch_b})")

        stars_b = {s["chinese_name"] for s in get_active_special_stars(ctx_b.special_stars)}
        for star in get_active_special_stars(ctx_a.special_stars):
            if star["chinese_name"] in stars_b:
                factors.append(f"Shared {star['chinese_name']}")

        return {
            "element_interaction": {
                "person1_element": interaction["person1_element"],
                "person2_element": interaction["person2_element"],
                "interaction_type": InteractionType(interaction["interaction_type"]).value,
                "cycle": interaction["cycle"],
                "explanation": interaction["description"],
            },
            "traditional_factors": factors,
        }


def _dominant_element(ctx):
    dominant = calculate_element_distribution(ctx)["dominant"]
    if not dominant:
        return None
    return to_element(dominant[0])


def _summary_entry(category: dict) -> dict:
    return {
        "category": category["label"],
        "percentage": category["percentage"],
        "percentile": category["percentile"],
        "description": percentile_description(category["percentile"]),
    }


def build_couple_prompt(identity_a, identity_b, score, breakdown, interaction, relation_type="romantic", focus_instruction=""):
    """
    构建双人合盘的 Prompt

    :param identity_a: identity dict of person A (code, title, element)
    :param identity_b: identity dict of person B
    :param score: CompatibilityScore computed in Python
    :param breakdown: output of score_breakdown
    :param interaction: element interaction dict
    :param relation_type: relationship type label
    :param focus_instruction: what this section of the report should cover
    :return: user prompt string
    """
    factor_lines = "\n".join(
        f"- {f.name}: {f.raw}/{f.max} (weight {f.weight})" for f in score.factors
    )
    category_lines = "\n".join(
        f"- {c['label']}: {c['percentage']}% (percentile {c['percentile']})" for c in breakdown["categories"]
    )
    return f"""Relationship type: {relation_type}

Person 1: {identity_a['title']} ({identity_a['code']}, {identity_a['element']} Day Master)
Person 2: {identity_b['title']} ({identity_b['code']}, {identity_b['element']} Day Master)

Element interaction: {InteractionType(interaction['interaction_type']).value} ({interaction['cycle']})
{interaction['description']}

Overall score: {score.overall}/100, {score.rating}
{factor_lines}

Categories:
{category_lines}

{focus_instruction}
Write in second person plural, warm and specific. Do not mention scores or Chinese terms."""
