import os
import sys

import pytest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from elements import Element  # noqa: E402
from models import (  # noqa: E402
    ChartStrength,
    FavorableElements,
    Pillar,
    SpecialStars,
    UserContext,
)


def make_context(day="丙午", year="甲子", month="丙寅", hour="戊戌",
                 primary=(), unfavorable=(), strength="Balanced", stars=None):
    return UserContext(
        social=Pillar.from_ganzhi(year),
        career=Pillar.from_ganzhi(month),
        personal=Pillar.from_ganzhi(day),
        innovation=Pillar.from_ganzhi(hour) if hour else None,
        favorable_elements=FavorableElements(primary=list(primary), unfavorable=list(unfavorable)),
        chart_strength=ChartStrength(strength=strength),
        special_stars=stars or SpecialStars(),
    )


@pytest.fixture
def context_factory():
    return make_context


@pytest.fixture
def fire_context():
    return make_context(day="丙午", primary=[Element.EARTH, Element.METAL],
                        unfavorable=[Element.FIRE, Element.WOOD], strength="Strong")


@pytest.fixture
def water_context():
    return make_context(day="壬子", year="庚申", month="辛酉", hour="壬子",
                        primary=[Element.WOOD, Element.FIRE],
                        unfavorable=[Element.WATER, Element.METAL], strength="Strong")
