import itertools
from types import SimpleNamespace

import pytest

from elements import STEMS, Element, Polarity
from models import StemDescriptor
from ten_gods import (
    CHINESE_NAMES,
    TenGod,
    TenGodResolutionError,
    resolve_ten_god,
    resolve_ten_god_by_character,
)


def test_all_stem_pairs_resolve():
    descriptors = [StemDescriptor.from_character(s) for s in STEMS]
    for dm, other in itertools.product(descriptors, repeat=2):
        assert isinstance(resolve_ten_god(dm, other), TenGod)


def test_each_day_master_sees_ten_distinct_gods():
    for dm in STEMS:
        gods = {resolve_ten_god_by_character(dm, other) for other in STEMS}
        assert gods == set(TenGod)


def test_same_stem_is_companion():
    for stem in STEMS:
        assert resolve_ten_god_by_character(stem, stem) == TenGod.BI_JIAN


def test_same_element_opposite_polarity_is_rob_wealth():
    assert resolve_ten_god_by_character("甲", "乙") == TenGod.JIE_CAI
    assert resolve_ten_god_by_character("癸", "壬") == TenGod.JIE_CAI


@pytest.mark.parametrize("other, expected", [
    ("丙", TenGod.SHANG_GUAN),
    ("丁", TenGod.SHI_SHEN),
    ("戊", TenGod.PIAN_CAI),
    ("己", TenGod.ZHENG_CAI),
    ("庚", TenGod.QI_SHA),
    ("辛", TenGod.ZHENG_GUAN),
    ("壬", TenGod.PIAN_YIN),
    ("癸", TenGod.ZHENG_YIN),
])
def test_jia_day_master_table(other, expected):
    assert resolve_ten_god_by_character("甲", other) == expected


def test_chinese_names_cover_every_god():
    assert set(CHINESE_NAMES) == set(TenGod)


def test_unknown_stem_rejected():
    with pytest.raises(ValueError):
        resolve_ten_god_by_character("甲", "X")


def test_element_outside_cycle_raises():
    day_master = StemDescriptor.from_character("甲")
    stray = SimpleNamespace(element="Plasma", polarity=Polarity.YANG)
    with pytest.raises(TenGodResolutionError):
        resolve_ten_god(day_master, stray)


def test_relation_follows_element_cycle():
    # 木生火, 金克木
    fire = SimpleNamespace(element=Element.FIRE, polarity=Polarity.YIN)
    metal = SimpleNamespace(element=Element.METAL, polarity=Polarity.YANG)
    day_master = StemDescriptor.from_character("甲")
    assert resolve_ten_god(day_master, fire) == TenGod.SHI_SHEN
    assert resolve_ten_god(day_master, metal) == TenGod.QI_SHA
