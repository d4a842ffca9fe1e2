"""
十神 (Ten Gods) resolution between a Day Master and any other stem.

Luck-cycle and transit stems usually arrive without a Ten God, so it is
computed here from element and polarity alone.
"""
from __future__ import annotations

from enum import Enum

from elements import element_relation


class TenGod(str, Enum):
    BI_JIAN = "Bi Jian"          # 比肩 Friend
    JIE_CAI = "Jie Cai"          # 劫财 Rob Wealth
    SHI_SHEN = "Shi Shen"        # 食神 Eating God
    SHANG_GUAN = "Shang Guan"    # 伤官 Hurting Officer
    PIAN_CAI = "Pian Cai"        # 偏财 Indirect Wealth
    ZHENG_CAI = "Zheng Cai"      # 正财 Direct Wealth
    QI_SHA = "Qi Sha"            # 七杀 Seven Killings
    ZHENG_GUAN = "Zheng Guan"    # 正官 Direct Officer
    PIAN_YIN = "Pian Yin"        # 偏印 Indirect Resource
    ZHENG_YIN = "Zheng Yin"      # 正印 Direct Resource


CHINESE_NAMES = {
    TenGod.BI_JIAN: "比肩",
    TenGod.JIE_CAI: "劫财",
    TenGod.SHI_SHEN: "食神",
    TenGod.SHANG_GUAN: "伤官",
    TenGod.PIAN_CAI: "偏财",
    TenGod.ZHENG_CAI: "正财",
    TenGod.QI_SHA: "七杀",
    TenGod.ZHENG_GUAN: "正官",
    TenGod.PIAN_YIN: "偏印",
    TenGod.ZHENG_YIN: "正印",
}

ENGLISH_NAMES = {
    TenGod.BI_JIAN: "Friend",
    TenGod.JIE_CAI: "Rob Wealth",
    TenGod.SHI_SHEN: "Eating God",
    TenGod.SHANG_GUAN: "Hurting Officer",
    TenGod.PIAN_CAI: "Indirect Wealth",
    TenGod.ZHENG_CAI: "Direct Wealth",
    TenGod.QI_SHA: "7 Killings",
    TenGod.ZHENG_GUAN: "Direct Officer",
    TenGod.PIAN_YIN: "Indirect Resource",
    TenGod.ZHENG_YIN: "Direct Resource",
}

# 日主对他干的五行关系 -> (同性, 异性)
_RELATION_TABLE = {
    "same": (TenGod.BI_JIAN, TenGod.JIE_CAI),           # 比劫
    "generated_by": (TenGod.PIAN_YIN, TenGod.ZHENG_YIN),  # 生我者印
    "controlled_by": (TenGod.QI_SHA, TenGod.ZHENG_GUAN),  # 克我者官杀
    "generates": (TenGod.SHANG_GUAN, TenGod.SHI_SHEN),    # 我生者食伤
    "controls": (TenGod.PIAN_CAI, TenGod.ZHENG_CAI),      # 我克者财
}


class TenGodResolutionError(RuntimeError):
    """Raised when two stems match none of the five-element relations."""


def resolve_ten_god(day_master, other) -> TenGod:
    """
    计算十神关系

    :param day_master: StemDescriptor of the Day Master
    :param other: StemDescriptor of the stem being classified
    :return: TenGod
    :raises TenGodResolutionError: when the element tables yield no relation
    """
    same_polarity = day_master.polarity == other.polarity
    try:
        relation = element_relation(day_master.element, other.element)
    except ValueError as exc:
        raise TenGodResolutionError(str(exc)) from exc

    same_variant, different_variant = _RELATION_TABLE[relation]
    return same_variant if same_polarity else different_variant


def resolve_ten_god_by_character(day_master: str, other: str) -> TenGod:
    """Resolve from raw stem characters such as ("壬", "丙")."""
    from models import StemDescriptor

    return resolve_ten_god(StemDescriptor.from_character(day_master), StemDescriptor.from_character(other))
