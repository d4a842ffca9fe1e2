"""
Domain records shared by the resolution, scoring and reporting code.

Every record is a frozen pydantic model: built once per request and never
mutated afterwards. ``ChartAnalysis`` is the boundary type returned by the
chart oracle and is validated exactly once, when it is constructed.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from elements import BRANCH_INFO, STEM_INFO, STEMS, Element, Polarity
from ten_gods import TenGod


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Stems, branches, pillars ---

class StemDescriptor(_Frozen):
    """Heavenly Stem (天干)."""
    character: str = Field(..., description="Stem character, e.g. 甲")
    element: Element
    polarity: Polarity
    ordinal: int = Field(..., ge=0, le=9, description="Index in 甲乙丙丁戊己庚辛壬癸")

    @classmethod
    def from_character(cls, character: str) -> "StemDescriptor":
        if character not in STEM_INFO:
            raise ValueError(f"Unknown heavenly stem: {character!r}")
        element, polarity = STEM_INFO[character]
        return cls(character=character, element=element, polarity=polarity, ordinal=STEMS.index(character))


class BranchDescriptor(_Frozen):
    """Earthly Branch (地支)."""
    character: str = Field(..., description="Branch character, e.g. 子")
    element: Element
    animal: str = Field(..., description="Animal sign, e.g. Rat")

    @classmethod
    def from_character(cls, character: str) -> "BranchDescriptor":
        if character not in BRANCH_INFO:
            raise ValueError(f"Unknown earthly branch: {character!r}")
        element, animal = BRANCH_INFO[character]
        return cls(character=character, element=element, animal=animal)


class Pillar(_Frozen):
    stem: StemDescriptor
    branch: BranchDescriptor
    ten_god: Optional[TenGod] = Field(None, description="Ten God of the stem against the Day Master")

    @classmethod
    def from_ganzhi(cls, gan_zhi: str, ten_god: Optional[TenGod] = None) -> "Pillar":
        if len(gan_zhi) != 2:
            raise ValueError(f"Pillar must be two characters, got {gan_zhi!r}")
        return cls(
            stem=StemDescriptor.from_character(gan_zhi[0]),
            branch=BranchDescriptor.from_character(gan_zhi[1]),
            ten_god=ten_god,
        )

    @property
    def label(self) -> str:
        return f"{self.stem.character}{self.branch.character}"


# --- Luck cycles ---

class LuckCycleRecord(_Frozen):
    """
    One 10-year luck cycle (大运) as delivered by the chart oracle.

    Index 0 is the Pre-Luck Era. Bounds are western ages and calendar years;
    ``None`` means the oracle could not compute them.
    """
    index: int = Field(..., ge=0)
    stem: Optional[StemDescriptor] = None
    branch: Optional[BranchDescriptor] = None
    age_start: Optional[int] = Field(None, ge=0)
    year_start: Optional[int] = None
    year_end: Optional[int] = None
    ten_god: Optional[TenGod] = None

    @property
    def is_pre_luck(self) -> bool:
        return self.index == 0

    @property
    def label(self) -> str:
        if self.stem and self.branch:
            return f"{self.stem.character}{self.branch.character}"
        return ""


class ResolvedCycle(_Frozen):
    """A luck cycle with every bound filled in, flagged where it was inferred."""
    index: int
    stem: Optional[StemDescriptor] = None
    branch: Optional[BranchDescriptor] = None
    age_start: Optional[int] = None
    age_end: Optional[int] = None
    year_start: Optional[int] = None
    year_end: Optional[int] = None
    ten_god: Optional[TenGod] = None
    is_pre_luck: bool = False
    age_start_estimated: bool = False
    year_start_estimated: bool = False
    year_end_estimated: bool = False
    ten_god_derived: bool = False

    def contains_age(self, age: int) -> bool:
        if self.age_start is None or self.age_end is None:
            return False
        return self.age_start <= age <= self.age_end

    def contains_year(self, year: int) -> bool:
        if self.year_start is None or self.year_end is None:
            return False
        return self.year_start <= year <= self.year_end

    @property
    def label(self) -> str:
        if self.stem and self.branch:
            return f"{self.stem.character}{self.branch.character}"
        return ""


class RemainingTime(_Frozen):
    years: int = 0
    months: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0


class LuckCyclesView(_Frozen):
    current: ResolvedCycle
    next: Optional[ResolvedCycle] = None
    current_age: int
    remaining: RemainingTime
    cycle_end: datetime
    strategy: str = Field(..., description="Name of the resolution strategy that matched")


# --- User context ---

class FavorableElements(_Frozen):
    primary: List[Element] = Field(default_factory=list)
    secondary: List[Element] = Field(default_factory=list)
    unfavorable: List[Element] = Field(default_factory=list)

    def classify(self, element: Element) -> int:
        """+1 favorable, -1 unfavorable, 0 otherwise."""
        if element in self.primary or element in self.secondary:
            return 1
        if element in self.unfavorable:
            return -1
        return 0


class ChartStrength(_Frozen):
    strength: Literal["Strong", "Weak", "Balanced"] = "Balanced"
    score: int = 0
    notes: str = ""


class NatalPattern(_Frozen):
    id: str
    name: str
    chinese_name: str
    involved_pillars: List[str] = Field(default_factory=list)
    strength: Literal["strong", "moderate", "weak"] = "weak"


class SpecialStars(_Frozen):
    nobleman: List[str] = Field(default_factory=list, description="天乙贵人 branches present")
    intelligence: Optional[str] = Field(None, description="文昌 branch present")
    sky_horse: Optional[str] = Field(None, description="驿马 branch present")
    peach_blossom: Optional[str] = Field(None, description="桃花 branch present")


class UserContext(_Frozen):
    """Normalized chart: the single input type of every scoring component."""
    social: Pillar = Field(..., description="Year pillar")
    career: Pillar = Field(..., description="Month pillar")
    personal: Pillar = Field(..., description="Day pillar")
    innovation: Optional[Pillar] = Field(None, description="Hour pillar, None when birth time is unknown")
    favorable_elements: FavorableElements = Field(default_factory=FavorableElements)
    chart_strength: ChartStrength = Field(default_factory=ChartStrength)
    natal_patterns: List[NatalPattern] = Field(default_factory=list)
    special_stars: SpecialStars = Field(default_factory=SpecialStars)

    @property
    def day_master(self) -> StemDescriptor:
        return self.personal.stem

    def pillars(self) -> List[Pillar]:
        pillars = [self.social, self.career, self.personal]
        if self.innovation is not None:
            pillars.append(self.innovation)
        return pillars


# --- Oracle boundary ---

class BirthInput(_Frozen):
    """Birth data of one person, as the services receive it."""
    birth: datetime = Field(..., description="Local birth time; naive values are read in birth_timezone")
    sex: Literal["male", "female"]
    birth_timezone: str = Field("Asia/Shanghai", description="IANA timezone of the birthplace")
    time_known: bool = True
    current_timezone: Optional[str] = Field(None, description="Where the person lives now, for daily readings")


class ChartAnalysis(_Frozen):
    """Validated output of the chart oracle."""
    birth: datetime = Field(..., description="Timezone-aware birth instant")
    sex: Literal["male", "female"]
    time_known: bool
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Optional[Pillar] = None
    luck_cycles: List[LuckCycleRecord]
    interactions: List[str] = Field(default_factory=list)

    @field_validator("birth")
    @classmethod
    def _birth_is_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("birth must carry a timezone")
        return value

    @model_validator(mode="after")
    def _check_cycles(self) -> "ChartAnalysis":
        if not self.luck_cycles:
            raise ValueError("luck_cycles must not be empty")
        if self.luck_cycles[0].index != 0 or self.luck_cycles[0].age_start not in (0, None):
            raise ValueError("first luck cycle must be the Pre-Luck Era")
        if sum(1 for c in self.luck_cycles if c.age_start == 0) > 1:
            raise ValueError("exactly one luck cycle may start at age 0")
        indexes = [c.index for c in self.luck_cycles]
        if indexes != sorted(indexes) or len(set(indexes)) != len(indexes):
            raise ValueError("luck cycles must be ordered by index")
        for cycle in self.luck_cycles[1:]:
            if cycle.stem is None or cycle.branch is None:
                raise ValueError(f"luck cycle {cycle.index} has no stem/branch")
        if self.time_known and self.hour is None:
            raise ValueError("hour pillar is required when birth time is known")
        return self

    @property
    def day_master(self) -> StemDescriptor:
        return self.day.stem


# --- Compatibility ---

class CompatibilityFactorScore(_Frozen):
    name: str
    raw: int
    max: int
    weight: int
    weighted: float


class CompatibilityScore(_Frozen):
    overall: int = Field(..., ge=0, le=100)
    rating: str
    headline: str
    relationship_type: str
    factors: List[CompatibilityFactorScore]
