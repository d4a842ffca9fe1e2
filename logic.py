"""
Fortune Teller Logic Module.

Chart oracle (lunar_python), UserContext extraction and the services that
combine luck-cycle resolution, compatibility scoring and narrative text.
"""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta
from dotenv import load_dotenv
from lunar_python import Solar

from bazi_utils import (
    BaziCompatibilityCalculator,
    build_couple_prompt,
    get_active_special_stars,
)
from daily import daily_adjustment
from elements import (
    CONTROLS,
    GENERATES,
    HIDDEN_STEMS,
    STEM_INFO,
    Element,
    InteractionType,
    Polarity,
    branch_element,
    calculate_element_distribution,
    calculate_element_interaction,
    stem_element,
)
from llm_client import generate_text
from luck_cycles import locate
from models import (
    BirthInput,
    BranchDescriptor,
    ChartAnalysis,
    ChartStrength,
    CompatibilityScore,
    FavorableElements,
    LuckCycleRecord,
    LuckCyclesView,
    NatalPattern,
    Pillar,
    SpecialStars,
    StemDescriptor,
    UserContext,
)
from rarity import estimate_pairing_rarity, estimate_rarity
from ten_gods import CHINESE_NAMES, ENGLISH_NAMES, TenGod, resolve_ten_god

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Shanghai")
MAX_AGE = 120


class ChartUnavailableError(RuntimeError):
    """Raised when the chart oracle cannot build a chart for the birth data."""


# ================== Chart oracle ==================

def _localize(birth: datetime, birth_timezone: str) -> datetime:
    tz = ZoneInfo(birth_timezone)
    if birth.tzinfo is None:
        return birth.replace(tzinfo=tz)
    return birth.astimezone(tz)


def _eight_char(moment: datetime):
    solar = Solar.fromYmdHms(moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)
    return solar.getLunar().getEightChar()


def detect_interactions(branches: list) -> list:
    """
    检查地支关系 (六冲、六合、三合)
    """
    interactions = []

    # 六冲
    clashes = [("子", "午"), ("丑", "未"), ("寅", "申"), ("卯", "酉"), ("辰", "戌"), ("巳", "亥")]
    for b1, b2 in clashes:
        if b1 in branches and b2 in branches:
            interactions.append(f"{b1}{b2}相冲")

    # 六合
    combines = [("子", "丑"), ("寅", "亥"), ("卯", "戌"), ("辰", "酉"), ("巳", "申"), ("午", "未")]
    for b1, b2 in combines:
        if b1 in branches and b2 in branches:
            interactions.append(f"{b1}{b2}六合")

    # 三合
    trios = [
        ({"申", "子", "辰"}, "水局"), ({"寅", "午", "戌"}, "火局"),
        ({"亥", "卯", "未"}, "木局"), ({"巳", "酉", "丑"}, "金局")
    ]
    branch_set = set(branches)
    for group, name in trios:
        if group.issubset(branch_set):
            interactions.append(f"三合{name}")

    return interactions


def _cycle_record(da_yun, time_known: bool) -> LuckCycleRecord:
    index = da_yun.getIndex()
    if index == 0:
        return LuckCycleRecord(
            index=0,
            age_start=0,
            year_start=da_yun.getStartYear(),
            year_end=da_yun.getEndYear(),
        )
    gan_zhi = da_yun.getGanZhi()
    if not time_known:
        # 无时辰时起运岁数不可靠, 由 luck_cycles 估算
        return LuckCycleRecord(
            index=index,
            stem=StemDescriptor.from_character(gan_zhi[0]),
            branch=BranchDescriptor.from_character(gan_zhi[1]),
        )
    return LuckCycleRecord(
        index=index,
        stem=StemDescriptor.from_character(gan_zhi[0]),
        branch=BranchDescriptor.from_character(gan_zhi[1]),
        # lunar_python 使用虚岁; age 0 belongs to the Pre-Luck Era only
        age_start=max(1, da_yun.getStartAge() - 1),
        year_start=da_yun.getStartYear(),
        year_end=da_yun.getEndYear(),
    )


def analyze(birth: datetime, sex: str, birth_timezone: str, time_known: bool) -> Optional[ChartAnalysis]:
    """
    排盘: four pillars, luck cycles and natal branch interactions.

    :param birth: local birth time (naive wall time or aware)
    :param sex: "male" or "female"
    :param birth_timezone: IANA name, e.g. "Asia/Shanghai"
    :param time_known: False uses noon for the pillars and drops the hour pillar
    :return: ChartAnalysis, or None when the chart cannot be built
    """
    try:
        local_birth = _localize(birth, birth_timezone)
        moment = local_birth if time_known else local_birth.replace(hour=12, minute=0, second=0)
        eight_char = _eight_char(moment)

        day_master = eight_char.getDayGan()
        pillars = {
            "year": eight_char.getYear(),
            "month": eight_char.getMonth(),
            "day": eight_char.getDay(),
            "hour": eight_char.getTime() if time_known else None,
        }

        def build(gan_zhi):
            if gan_zhi is None:
                return None
            return Pillar.from_ganzhi(gan_zhi, ten_god=resolve_ten_god(
                StemDescriptor.from_character(day_master), StemDescriptor.from_character(gan_zhi[0])
            ))

        yun = eight_char.getYun(1 if sex == "male" else 0)
        records = [_cycle_record(dy, time_known) for dy in yun.getDaYun()]
        branches = [gz[1] for gz in pillars.values() if gz]

        return ChartAnalysis(
            birth=local_birth,
            sex=sex,
            time_known=time_known,
            year=build(pillars["year"]),
            month=build(pillars["month"]),
            day=Pillar.from_ganzhi(pillars["day"]),
            hour=build(pillars["hour"]),
            luck_cycles=records,
            interactions=detect_interactions(branches),
        )
    except Exception:
        logger.exception("Chart analysis failed for %s (%s)", birth, birth_timezone)
        return None


def get_chart_analysis(birth: datetime, sex: str, birth_timezone: str, time_known: bool) -> ChartAnalysis:
    analysis = analyze(birth, sex, birth_timezone, time_known)
    if analysis is None:
        raise ChartUnavailableError(f"Unable to calculate chart for {birth.isoformat()} ({birth_timezone})")
    return analysis


def pillar_for_year(year: int) -> Pillar:
    """流年干支 (mid-year, so the 立春 boundary never interferes)."""
    return Pillar.from_ganzhi(_eight_char(datetime(year, 6, 15, 12, 0, 0)).getYear())


def day_pillar(day: date) -> Pillar:
    """流日干支"""
    return Pillar.from_ganzhi(_eight_char(datetime(day.year, day.month, day.day, 12, 0, 0)).getDay())


def current_luck_guess(analysis: ChartAnalysis, reference: datetime) -> Optional[LuckCycleRecord]:
    """
    The calendar-year lookup the upstream library does for "current" 大运.

    Compares against Jan-1 year bounds, so it can be off by one cycle near a
    switch; ``luck_cycles.locate`` only accepts it after checking the age.
    """
    year = reference.year
    for record in analysis.luck_cycles[1:]:
        if record.year_start is not None and record.year_end is not None:
            if record.year_start <= year <= record.year_end:
                return record
    return None


# ================== UserContext 提取 ==================

class BaziStrengthCalculator:
    """八字身强身弱计算器 - 加权打分法"""

    # 月令最重, 日支次之; 日干是自己, 不计分
    weights = {
        "year_stem": 4, "year_branch": 4,
        "month_stem": 8, "month_branch": 40,
        "day_branch": 12,
        "hour_stem": 8, "hour_branch": 8,
    }
    full_weight = 84
    # 阈值附近 ±4 视为中和
    balanced_band = 4

    def calculate_strength(self, day_master: str, pillars: dict) -> dict:
        """
        计算身强身弱

        :param day_master: 日主 (如 '壬')
        :param pillars: {"year": "甲子", "month": ..., "day": ..., "hour": ... or None}
        :return: dict with strength, score, threshold, is_strong, notes
        """
        dm_wx = STEM_INFO[day_master][0]
        resource_wx = next(k for k, v in GENERATES.items() if v == dm_wx)

        positions = [
            ("year_stem", pillars["year"][0]), ("year_branch", pillars["year"][1]),
            ("month_stem", pillars["month"][0]), ("month_branch", pillars["month"][1]),
            ("day_branch", pillars["day"][1]),
        ]
        if pillars.get("hour"):
            positions += [("hour_stem", pillars["hour"][0]), ("hour_branch", pillars["hour"][1])]

        available = sum(self.weights[name] for name, _ in positions)
        self_party_score = 0
        for name, char in positions:
            wx = _char_element(char)
            # 同我 (比劫) 或 生我 (印枭) -> 加分
            if wx == dm_wx or wx == resource_wx:
                self_party_score += self.weights[name]
        score = round(self_party_score * self.full_weight / available)

        month_wx = _char_element(pillars["month"][1])
        is_de_ling = month_wx in (dm_wx, resource_wx)
        threshold = 38 if is_de_ling else 48

        if score >= threshold + self.balanced_band:
            strength = "Strong"
        elif score < threshold - self.balanced_band:
            strength = "Weak"
        else:
            strength = "Balanced"

        return {
            "strength": strength,
            "score": score,
            "threshold": threshold,
            "is_strong": score >= threshold,
            "notes": f"Self-party score {score}, threshold {threshold} ({'得令' if is_de_ling else '失令'})",
        }

    def get_joy_elements(self, is_strong: bool, day_master: str) -> FavorableElements:
        """
        喜用神: 身强喜克泄耗, 身弱喜生扶
        """
        dm_wx = STEM_INFO[day_master][0]
        resource_wx = next(k for k, v in GENERATES.items() if v == dm_wx)
        output_wx = GENERATES[dm_wx]
        wealth_wx = CONTROLS[dm_wx]
        officer_wx = next(k for k, v in CONTROLS.items() if v == dm_wx)

        if is_strong:
            return FavorableElements(
                primary=[output_wx, wealth_wx],
                secondary=[officer_wx],
                unfavorable=[dm_wx, resource_wx],
            )
        return FavorableElements(
            primary=[resource_wx, dm_wx],
            secondary=[],
            unfavorable=[officer_wx, wealth_wx],
        )


def _char_element(char: str) -> Element:
    if char in STEM_INFO:
        return stem_element(char)
    return branch_element(char)


_OUTPUT = {TenGod.SHI_SHEN, TenGod.SHANG_GUAN}
_WEALTH = {TenGod.ZHENG_CAI, TenGod.PIAN_CAI}
_RESOURCE = {TenGod.ZHENG_YIN, TenGod.PIAN_YIN}
_OFFICER = {TenGod.ZHENG_GUAN, TenGod.QI_SHA}

# (id, name, chinese name, required groups); each group needs one member present
NATAL_PATTERN_RULES = [
    ("shi-shang-sheng-cai", "The Wealth Generator", "食傷生財", [_OUTPUT, _WEALTH]),
    ("shang-guan-pei-yin", "The Creative Genius", "傷官配印", [{TenGod.SHANG_GUAN}, _RESOURCE]),
    ("sha-yin-xiang-sheng", "The Authority", "殺印相生", [{TenGod.QI_SHA}, _RESOURCE]),
    ("cai-guan-shuang-mei", "The Power Player", "財官雙美", [_WEALTH, _OFFICER]),
    ("shi-shen-zhi-sha", "The Peacemaker", "食神制殺", [{TenGod.SHI_SHEN}, {TenGod.QI_SHA}]),
    ("shang-guan-jian-guan", "The Rebel", "傷官見官", [{TenGod.SHANG_GUAN}, {TenGod.ZHENG_GUAN}]),
    ("guan-sha-hun-za", "The Overthinker", "官殺混雜", [{TenGod.ZHENG_GUAN}, {TenGod.QI_SHA}]),
    ("yin-duo-wei-gui", "The Scholar", "印多為貴", [{TenGod.ZHENG_YIN}, {TenGod.PIAN_YIN}]),
    ("cai-duo-shen-ruo", "The Opportunity Magnet", "財多身弱", [{TenGod.ZHENG_CAI}, {TenGod.PIAN_CAI}]),
    ("bi-jie-cheng-qun", "The Competitor", "比劫成群", [{TenGod.BI_JIAN}, {TenGod.JIE_CAI}]),
    ("guan-yin-xiang-sheng", "The Professional", "官印相生", [{TenGod.ZHENG_GUAN}, _RESOURCE]),
    ("cai-zi-ruo-sha", "The Empire Builder", "財滋弱殺", [_WEALTH, {TenGod.QI_SHA}]),
]


def detect_natal_patterns(pillars: dict, strength: str) -> list:
    """
    组合格局: Ten God combinations among the natal stems.

    :param pillars: {"year": Pillar, "month": Pillar, "day": Pillar, "hour": Pillar | None}
    :param strength: Strong / Weak / Balanced; 財多身弱 needs a weak chart
    """
    present = {name: p.ten_god for name, p in pillars.items() if p is not None and p.ten_god is not None}
    gods = set(present.values())

    patterns = []
    for pattern_id, name, chinese_name, groups in NATAL_PATTERN_RULES:
        if not all(gods & group for group in groups):
            continue
        if pattern_id == "cai-duo-shen-ruo" and strength != "Weak":
            continue
        relevant = set().union(*groups)
        involved = [pillar for pillar, god in present.items() if god in relevant]
        if "month" in involved or len(involved) >= 3:
            level = "strong"
        elif len(involved) == 2 or "day" in involved or "hour" in involved:
            level = "moderate"
        else:
            level = "weak"
        patterns.append(NatalPattern(
            id=pattern_id,
            name=name,
            chinese_name=chinese_name,
            involved_pillars=involved,
            strength=level,
        ))
    return patterns


# 神煞 lookup tables
_NOBLEMAN_MAP = {
    "甲": ["丑", "未"], "戊": ["丑", "未"], "庚": ["丑", "未"],
    "乙": ["子", "申"], "己": ["子", "申"],
    "丙": ["亥", "酉"], "丁": ["亥", "酉"],
    "壬": ["巳", "卯"], "癸": ["巳", "卯"],
    "辛": ["午", "寅"]
}
_WENCHANG_MAP = {
    "甲": "巳", "乙": "午", "丙": "申", "丁": "酉", "戊": "申",
    "己": "酉", "庚": "亥", "辛": "子", "壬": "寅", "癸": "卯"
}
# 申子辰见酉, 寅午戌见卯, 巳酉丑见午, 亥卯未见子
_TAOHUA_MAP = {
    "申": "酉", "子": "酉", "辰": "酉",
    "寅": "卯", "午": "卯", "戌": "卯",
    "巳": "午", "酉": "午", "丑": "午",
    "亥": "子", "卯": "子", "未": "子"
}
# 申子辰马在寅...
_YIMA_MAP = {
    "申": "寅", "子": "寅", "辰": "寅",
    "寅": "申", "午": "申", "戌": "申",
    "巳": "亥", "酉": "亥", "丑": "亥",
    "亥": "巳", "卯": "巳", "未": "巳"
}


def get_special_stars(day_master: str, day_branch: str, all_branches: list) -> SpecialStars:
    """计算核心神煞 (贵人, 文昌, 驿马, 桃花)"""
    nobleman = sorted({b for b in all_branches if b in _NOBLEMAN_MAP.get(day_master, [])})
    wenchang = _WENCHANG_MAP.get(day_master)
    horse = _YIMA_MAP.get(day_branch)
    flower = _TAOHUA_MAP.get(day_branch)
    return SpecialStars(
        nobleman=nobleman,
        intelligence=wenchang if wenchang in all_branches else None,
        sky_horse=horse if horse in all_branches else None,
        peach_blossom=flower if flower in all_branches else None,
    )


_STRENGTH_CALC = BaziStrengthCalculator()


def build_user_context(analysis: ChartAnalysis) -> UserContext:
    """Reduce a ChartAnalysis to the normalized chart every scorer consumes."""
    day_master = analysis.day_master.character
    raw = {
        "year": analysis.year.label,
        "month": analysis.month.label,
        "day": analysis.day.label,
        "hour": analysis.hour.label if analysis.hour else None,
    }
    strength = _STRENGTH_CALC.calculate_strength(day_master, raw)
    favorable = _STRENGTH_CALC.get_joy_elements(strength["is_strong"], day_master)
    pillars = {"year": analysis.year, "month": analysis.month, "day": analysis.day, "hour": analysis.hour}
    branches = [p.branch.character for p in pillars.values() if p is not None]

    return UserContext(
        social=analysis.year,
        career=analysis.month,
        personal=analysis.day,
        innovation=analysis.hour,
        favorable_elements=favorable,
        chart_strength=ChartStrength(
            strength=strength["strength"], score=strength["score"], notes=strength["notes"]
        ),
        natal_patterns=detect_natal_patterns(pillars, strength["strength"]),
        special_stars=get_special_stars(day_master, analysis.day.branch.character, branches),
    )


# ================== Identity ==================

ARCHETYPES = {
    "甲": "Trailblazer", "乙": "Diplomat", "丙": "Catalyst", "丁": "Refiner", "戊": "Guardian",
    "己": "Cultivator", "庚": "Architect", "辛": "Artisan", "壬": "Navigator", "癸": "Oracle",
}
CORE_TRAITS = {
    "甲": "Pioneering", "乙": "Adaptive", "丙": "Expressive", "丁": "Focused", "戊": "Grounded",
    "己": "Nurturing", "庚": "Decisive", "辛": "Precise", "壬": "Strategic", "癸": "Intuitive",
}
BEHAVIORS = {
    "子": "Resourceful", "丑": "Steadfast", "寅": "Bold", "卯": "Diplomatic", "辰": "Ambitious",
    "巳": "Perceptive", "午": "Independent", "未": "Creative", "申": "Clever", "酉": "Meticulous",
    "戌": "Loyal", "亥": "Generous",
}
VISUAL_METAPHORS = {
    "甲": "towering oak", "乙": "climbing vine", "丙": "blazing sun", "丁": "focused flame",
    "戊": "mountain peak", "己": "fertile garden", "庚": "forged blade", "辛": "cut diamond",
    "壬": "deep ocean", "癸": "morning dew",
}


def generate_identity(ctx: UserContext) -> dict:
    """Day Master type code ("Fire-I" / "Fire-O") and title ("The Focused Refiner")."""
    stem = ctx.day_master
    code = f"{stem.element.value}-{'I' if stem.polarity == Polarity.YIN else 'O'}"
    core_trait = CORE_TRAITS.get(stem.character, "Balanced")
    archetype = ARCHETYPES.get(stem.character, "Seeker")
    return {
        "code": code,
        "title": f"The {core_trait} {archetype}",
        "element": stem.element.value,
        "polarity": stem.polarity.value,
        "archetype": archetype,
        "behavior": BEHAVIORS.get(ctx.personal.branch.character, "Dynamic"),
        "core_trait": core_trait,
        "visual_metaphor": VISUAL_METAPHORS.get(stem.character, "balanced force"),
    }


def generate_chart_display(ctx: UserContext, identity: dict) -> dict:
    """Day Master card and four pillars for the report's chart view."""
    labels = [("Year", ctx.social), ("Month", ctx.career), ("Day", ctx.personal), ("Hour", ctx.innovation)]
    pillars = []
    for label, pillar in labels:
        if pillar is None:
            pillars.append({"label": label, "known": False})
            continue
        pillars.append({
            "label": label,
            "known": True,
            "stem": pillar.stem.character,
            "branch": pillar.branch.character,
            "stem_element": pillar.stem.element.value,
            "branch_element": pillar.branch.element.value,
            "animal": pillar.branch.animal,
            "hidden_stems": HIDDEN_STEMS.get(pillar.branch.character, []),
            "ten_god": pillar.ten_god.value if pillar.ten_god else None,
            "ten_god_chinese": CHINESE_NAMES.get(pillar.ten_god),
            "ten_god_english": ENGLISH_NAMES.get(pillar.ten_god),
        })
    return {
        "day_master": {
            "stem": ctx.day_master.character,
            "element": identity["element"],
            "polarity": identity["polarity"],
            "animal": ctx.personal.branch.animal,
            "title": identity["title"],
        },
        "pillars": pillars,
    }


# ================== Services ==================

def _context_for(person: BirthInput):
    analysis = get_chart_analysis(person.birth, person.sex, person.birth_timezone, person.time_known)
    return analysis, build_user_context(analysis)


def get_basic_profile(person: BirthInput) -> dict:
    """Identity, rarity, element distribution and natal branch interactions; no text generation."""
    analysis, ctx = _context_for(person)
    identity = generate_identity(ctx)
    distribution = calculate_element_distribution(ctx)
    rarity = estimate_rarity(
        identity["code"],
        [p.id for p in ctx.natal_patterns],
        len(get_active_special_stars(ctx.special_stars)),
        dominant=distribution["dominant"],
        missing=distribution["missing"],
    )
    return {
        "identity": identity,
        "rarity": rarity,
        "element_distribution": distribution,
        "natal_interactions": list(analysis.interactions),
    }


def get_luck_cycles(person: BirthInput, current_timezone: Optional[str] = None,
                    reference: Optional[datetime] = None) -> LuckCyclesView:
    """Current and next 大运 with the time left in the current one."""
    analysis = get_chart_analysis(person.birth, person.sex, person.birth_timezone, person.time_known)
    reference = reference or datetime.now(ZoneInfo(current_timezone or person.birth_timezone))
    return locate(
        analysis.luck_cycles,
        analysis.birth,
        reference,
        analysis.time_known,
        day_master=analysis.day_master,
        upstream_guess=current_luck_guess(analysis, reference),
    )


def luck_pillar_at_age(analysis: ChartAnalysis, age) -> dict:
    """
    The 大运 active at a given age.

    Invalid ages come back as an error dict rather than an exception; charts
    without a birth time report the pillar as unavailable.
    """
    if isinstance(age, bool) or not isinstance(age, (int, float)) or age < 0 or age > MAX_AGE:
        return {"age": age, "error": f"Invalid age parameter: must be a number between 0-{MAX_AGE}"}
    if not analysis.time_known:
        return {"age": age, "available": False, "note": "Luck Pillar calculation requires known birth time"}

    target = analysis.birth + relativedelta(years=int(age))
    view = locate(
        analysis.luck_cycles,
        analysis.birth,
        target,
        analysis.time_known,
        day_master=analysis.day_master,
        upstream_guess=current_luck_guess(analysis, target),
    )
    cycle = view.current
    if cycle.is_pre_luck:
        return {"age": age, "available": False, "note": "Before the first Luck Pillar begins",
                "age_start": cycle.age_start, "year_start": cycle.year_start, "year_end": cycle.year_end}
    return {
        "age": age,
        "stem": cycle.stem.character,
        "branch": cycle.branch.character,
        "stem_element": cycle.stem.element.value,
        "branch_element": cycle.branch.element.value,
        "ten_god": cycle.ten_god.value if cycle.ten_god else None,
        "age_start": cycle.age_start,
        "year_start": cycle.year_start,
        "year_end": cycle.year_end,
    }


def get_base_compatibility_score(person_a: BirthInput, person_b: BirthInput,
                                 relationship_type: str = "romantic") -> CompatibilityScore:
    _, ctx_a = _context_for(person_a)
    _, ctx_b = _context_for(person_b)
    interaction = calculate_element_interaction(ctx_a.day_master.element, ctx_b.day_master.element)
    return BaziCompatibilityCalculator().score(ctx_a, ctx_b, interaction["interaction_type"], relationship_type)


COMPATIBILITY_SYSTEM_PROMPT = (
    "You are a thoughtful relationship writer grounded in Chinese BaZi. "
    "Use only the computed facts you are given; never invent scores."
)

CATEGORY_FOCUS = {
    "Romance": "Write 2-3 sentences on their emotional chemistry and attraction.",
    "Work": "Write 2-3 sentences on how they collaborate toward shared goals.",
    "Lifestyle": "Write 2-3 sentences on how their daily habits and values fit.",
    "Communication": "Write 2-3 sentences on how they naturally exchange ideas.",
}

CATEGORY_FALLBACKS = {
    "Romance": "Your emotional connection has its own rhythm; give it time and attention.",
    "Work": "You bring different strengths to shared goals; name them early and divide work clearly.",
    "Lifestyle": "Your routines can complement each other once expectations are spoken aloud.",
    "Communication": "You process ideas differently; slowing down helps each of you feel heard.",
}

OVERVIEW_FALLBACK = "Two distinct energies meet here, each bringing something the other can learn from."


async def get_compatibility_report(person_a: BirthInput, person_b: BirthInput,
                                   relationship_type: str = "romantic") -> dict:
    """
    Full compatibility report.

    All numbers are computed first; the overview and the four category
    narratives are then generated concurrently and awaited together.
    """
    _, ctx_a = _context_for(person_a)
    _, ctx_b = _context_for(person_b)
    identity_a, identity_b = generate_identity(ctx_a), generate_identity(ctx_b)

    calculator = BaziCompatibilityCalculator()
    interaction = calculate_element_interaction(ctx_a.day_master.element, ctx_b.day_master.element)
    score = calculator.score(ctx_a, ctx_b, interaction["interaction_type"], relationship_type)
    breakdown = calculator.score_breakdown(ctx_a, ctx_b, score.overall)

    rarity = estimate_pairing_rarity(
        identity_a["code"],
        identity_b["code"],
        both_have_patterns=bool(ctx_a.natal_patterns and ctx_b.natal_patterns),
        both_have_stars=bool(get_active_special_stars(ctx_a.special_stars)
                             and get_active_special_stars(ctx_b.special_stars)),
    )

    def prompt(focus):
        return build_couple_prompt(identity_a, identity_b, score, breakdown, interaction,
                                   relation_type=relationship_type, focus_instruction=focus)

    labels = [c["label"] for c in breakdown["categories"]]
    narratives = await asyncio.gather(
        generate_text(COMPATIBILITY_SYSTEM_PROMPT,
                      prompt("Write a 3-4 sentence overview of this pairing."),
                      OVERVIEW_FALLBACK, section="overview"),
        *[
            generate_text(COMPATIBILITY_SYSTEM_PROMPT, prompt(CATEGORY_FOCUS[label]),
                          CATEGORY_FALLBACKS[label], section=label)
            for label in labels
        ],
    )
    overview, category_texts = narratives[0], narratives[1:]

    categories = [dict(c, insight=text) for c, text in zip(breakdown["categories"], category_texts)]

    return {
        "pairing_title": calculator.pairing_title(identity_a["element"], identity_b["element"],
                                                  interaction["interaction_type"]),
        "score": score.model_dump(mode="json"),
        "summary": breakdown["summary"],
        "categories": categories,
        "rarity": rarity,
        "chart_display": {
            "person1": generate_chart_display(ctx_a, identity_a),
            "person2": generate_chart_display(ctx_b, identity_b),
        },
        "technical_basis": calculator.technical_basis(interaction, ctx_a, ctx_b),
        "overview": overview,
    }


DAILY_FALLBACKS = {
    "A+": "Today's energy lifts you both; make plans together.",
    "A": "A smooth day for the two of you; lean into shared time.",
    "B+": "Good flow today, with small chances to support each other.",
    "B": "A steady day; simple kindness goes a long way.",
    "C": "An ordinary day between you; keep expectations light.",
    "D+": "Some friction is likely; give each other a little room.",
    "D": "Energies pull in different directions today; stay patient.",
    "F": "A tense day for the pair; avoid big conversations if you can.",
}


def today_element(now: datetime, timezone: str) -> tuple:
    """Day stem element and day branch for ``now`` as seen in ``timezone``."""
    local = now.astimezone(ZoneInfo(timezone))
    pillar = day_pillar(local.date())
    return pillar.stem.element, pillar.branch.character


async def calculate_daily_compatibility(person_a: BirthInput, person_b: BirthInput,
                                        relationship_type: str = "romantic",
                                        current_timezone: Optional[str] = None,
                                        now: Optional[datetime] = None) -> dict:
    """
    How favorable today is for the pair, as a letter grade and one insight.
    """
    _, ctx_a = _context_for(person_a)
    _, ctx_b = _context_for(person_b)
    now = now or datetime.now(ZoneInfo(current_timezone or person_a.birth_timezone))

    element_a, branch_a = today_element(now, current_timezone or person_a.current_timezone or person_a.birth_timezone)
    element_b, branch_b = today_element(now, person_b.current_timezone or person_b.birth_timezone)

    base = calculate_element_interaction(ctx_a.day_master.element, ctx_b.day_master.element)["interaction_type"]
    calculator = BaziCompatibilityCalculator()
    clashes = (
        frozenset([branch_a, ctx_a.personal.branch.character]) in calculator.branch_clashes
        or frozenset([branch_b, ctx_b.personal.branch.character]) in calculator.branch_clashes
    )
    adjustment = daily_adjustment(
        element_a,
        element_b,
        base,
        (ctx_a.favorable_elements.classify(element_a), ctx_b.favorable_elements.classify(element_b)),
        today_interaction=InteractionType.CONFLICTING if clashes else None,
    )

    insight = await generate_text(
        COMPATIBILITY_SYSTEM_PROMPT,
        (
            f"Relationship: {relationship_type}. Today's element for person 1 is {element_a.value}, "
            f"for person 2 {element_b.value}. Today's interaction is "
            f"{adjustment.today_interaction.value.lower()}; their baseline is {InteractionType(base).value.lower()}. "
            f"Today's grade is {adjustment.letter_grade}. Write one encouraging sentence for today."
        ),
        DAILY_FALLBACKS[adjustment.letter_grade],
        section="daily insight",
        max_tokens=120,
    )
    return {"letter_grade": adjustment.letter_grade, "insight": insight, "delta": adjustment.delta}
