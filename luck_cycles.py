"""
Luck-cycle (大运) resolution.

Given the cycle records of a chart and a reference instant, find the cycle
that governs "now", the one after it, and the calendar time left until the
switch. Bounds missing from the oracle are estimated onto new
``ResolvedCycle`` values; the records passed in are never modified.

The resolution policy is ``DEFAULT_STRATEGIES``: an ordered tuple of
functions tried until one returns a cycle.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from models import LuckCycleRecord, LuckCyclesView, RemainingTime, ResolvedCycle, StemDescriptor
from ten_gods import resolve_ten_god

logger = logging.getLogger(__name__)

# 起运年龄估算: 无出生时辰时无法精确计算节气, 默认8岁起运
FIRST_CYCLE_AGE = int(os.getenv("LUCK_FIRST_CYCLE_AGE", "8"))
CYCLE_YEARS = int(os.getenv("LUCK_CYCLE_YEARS", "10"))
DAYS_PER_YEAR = 365.25
# Age past which the Pre-Luck Era can no longer be the answer
PRE_LUCK_MAX_AGE = 10


class PeriodResolutionError(RuntimeError):
    """Raised when no strategy yields a cycle."""


@dataclass(frozen=True)
class LocatorContext:
    cycles: Tuple[ResolvedCycle, ...]
    age: int
    year: int
    upstream_guess: Optional[LuckCycleRecord] = None


Strategy = Callable[[LocatorContext], Optional[ResolvedCycle]]


# ================== Bounds ==================

def current_age(birth: datetime, reference: datetime) -> int:
    """Whole years elapsed, using a 365.25-day year."""
    elapsed = reference - birth
    if elapsed.total_seconds() < 0:
        raise ValueError("reference instant precedes birth")
    return math.floor(elapsed.total_seconds() / (DAYS_PER_YEAR * 86400))


def resolve_bounds(
    records: Sequence[LuckCycleRecord],
    birth: datetime,
    time_known: bool,
    first_cycle_age: int = FIRST_CYCLE_AGE,
    cycle_years: int = CYCLE_YEARS,
) -> Tuple[ResolvedCycle, ...]:
    """
    Build a ResolvedCycle for every record.

    When the birth time is unknown, missing bounds of real cycles are
    estimated: cycle ``i`` starts at ``first_cycle_age + cycle_years*(i-1)``.
    A cycle ends the year before the next one starts; the last runs a full
    ``cycle_years``.
    The Pre-Luck Era ends the year before the first real cycle starts, or at
    ``first_cycle_age - 1`` if that start is unknown too.
    """
    resolved = []
    for record in records:
        if record.is_pre_luck:
            continue
        age_start, year_start, year_end = record.age_start, record.year_start, record.year_end
        flags = {}
        if not time_known:
            if age_start is None:
                age_start = first_cycle_age + cycle_years * (record.index - 1)
                flags["age_start_estimated"] = True
            if year_start is None:
                year_start = birth.year + age_start
                flags["year_start_estimated"] = True
            if year_end is None:
                year_end = year_start + cycle_years - 1
                flags["year_end_estimated"] = True
        resolved.append(ResolvedCycle(
            index=record.index,
            stem=record.stem,
            branch=record.branch,
            age_start=age_start,
            year_start=year_start,
            year_end=year_end,
            ten_god=record.ten_god,
            **flags,
        ))

    # 每步大运止于下一步起运前一年; 最后一步按满 cycle_years 计
    for position, cycle in enumerate(resolved):
        if cycle.age_start is None:
            continue
        following = resolved[position + 1] if position + 1 < len(resolved) else None
        if following is not None and following.age_start is not None:
            age_end = max(cycle.age_start, following.age_start - 1)
        else:
            age_end = cycle.age_start + cycle_years - 1
        resolved[position] = cycle.model_copy(update={"age_end": age_end})

    pre_luck = [r for r in records if r.is_pre_luck]
    if pre_luck:
        first_real = resolved[0] if resolved else None
        if first_real is not None and first_real.age_start is not None:
            age_end = first_real.age_start - 1
            end_estimated = first_real.age_start_estimated
        else:
            age_end = first_cycle_age - 1
            end_estimated = True
        record = pre_luck[0]
        if time_known and record.year_start is not None:
            year_start = record.year_start
        else:
            year_start = birth.year
        if time_known and record.year_end is not None:
            year_end, year_end_estimated = record.year_end, False
        elif first_real is not None and first_real.year_start is not None:
            year_end = first_real.year_start - 1
            year_end_estimated = end_estimated or first_real.year_start_estimated
        else:
            year_end, year_end_estimated = birth.year + age_end, True
        resolved.insert(0, ResolvedCycle(
            index=record.index,
            age_start=0,
            age_end=age_end,
            year_start=year_start,
            year_end=year_end,
            is_pre_luck=True,
            year_start_estimated=not time_known or record.year_start is None,
            year_end_estimated=year_end_estimated,
        ))
    return tuple(resolved)


# ================== Strategies ==================

def _real_cycles(cycles: Sequence[ResolvedCycle]):
    return [c for c in cycles if not c.is_pre_luck]


def upstream_guess_strategy(ctx: LocatorContext) -> Optional[ResolvedCycle]:
    """Accept the oracle's own guess only if it also fits the computed age."""
    guess = ctx.upstream_guess
    if guess is None or guess.stem is None or guess.branch is None:
        return None
    for cycle in _real_cycles(ctx.cycles):
        if (
            cycle.stem is not None
            and cycle.branch is not None
            and cycle.stem.character == guess.stem.character
            and cycle.branch.character == guess.branch.character
            and cycle.year_start == guess.year_start
            and cycle.contains_age(ctx.age)
        ):
            return cycle
    return None


def age_range_strategy(ctx: LocatorContext) -> Optional[ResolvedCycle]:
    for cycle in _real_cycles(ctx.cycles):
        if cycle.contains_age(ctx.age):
            return cycle
    return None


def year_range_strategy(ctx: LocatorContext) -> Optional[ResolvedCycle]:
    for cycle in _real_cycles(ctx.cycles):
        if cycle.contains_year(ctx.year):
            return cycle
    return None


def pre_luck_strategy(ctx: LocatorContext) -> Optional[ResolvedCycle]:
    real = _real_cycles(ctx.cycles)
    if not real or real[0].year_start is None:
        return None
    if ctx.year < real[0].year_start:
        for cycle in ctx.cycles:
            if cycle.is_pre_luck:
                return cycle
    return None


def last_record_strategy(ctx: LocatorContext) -> Optional[ResolvedCycle]:
    if not ctx.cycles:
        return None
    last = ctx.cycles[-1]
    if not last.is_pre_luck:
        return last
    for cycle in reversed(ctx.cycles):
        if not cycle.is_pre_luck and cycle.age_start is not None:
            return cycle
    return last


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    upstream_guess_strategy,
    age_range_strategy,
    year_range_strategy,
    pre_luck_strategy,
    last_record_strategy,
)


def strategy_name(strategy: Strategy) -> str:
    return strategy.__name__.replace("_strategy", "")


# ================== Remaining time ==================

def cycle_end_instant(cycle: ResolvedCycle, birth: datetime) -> Optional[datetime]:
    if cycle.age_end is None:
        return None
    return birth + relativedelta(years=cycle.age_end + 1)


def remaining_time(reference: datetime, end: datetime, cap_years: int = CYCLE_YEARS) -> RemainingTime:
    """
    Calendar-precise time from ``reference`` to ``end``.

    Whole years are added while the result stays <= end, then whole months,
    then whole days; hours and minutes come from what is left. Applying the
    parts to ``reference`` as ``relativedelta(years, months)`` followed by
    ``timedelta(days, hours, minutes)`` lands on ``end`` (to the minute).
    """
    if end <= reference:
        return RemainingTime()

    years = 0
    while reference + relativedelta(years=years + 1) <= end:
        years += 1

    # years and months are one offset from reference
    months = 0
    while reference + relativedelta(years=years, months=months + 1) <= end:
        months += 1
    cursor = reference + relativedelta(years=years, months=months)

    days = 0
    while cursor + timedelta(days=days + 1) <= end:
        days += 1
    cursor = cursor + timedelta(days=days)

    seconds = int((end - cursor).total_seconds())
    hours, seconds = divmod(seconds, 3600)
    minutes = seconds // 60

    if years >= cap_years:
        logger.warning("Remaining time %s years exceeds one cycle, capping at %s", years, cap_years)
        return RemainingTime(years=cap_years)
    return RemainingTime(years=years, months=months, days=days, hours=hours, minutes=minutes)


# ================== Ten God ==================

def with_ten_god(cycle: Optional[ResolvedCycle], day_master: Optional[StemDescriptor]) -> Optional[ResolvedCycle]:
    """Keep an existing Ten God, otherwise derive it from the Day Master."""
    if cycle is None:
        return None
    if cycle.is_pre_luck:
        return cycle.model_copy(update={"ten_god": None}) if cycle.ten_god is not None else cycle
    if cycle.ten_god is not None or day_master is None or cycle.stem is None:
        return cycle
    return cycle.model_copy(update={
        "ten_god": resolve_ten_god(day_master, cycle.stem),
        "ten_god_derived": True,
    })


# ================== Locate ==================

def locate(
    records: Sequence[LuckCycleRecord],
    birth: datetime,
    reference: datetime,
    time_known: bool,
    day_master: Optional[StemDescriptor] = None,
    upstream_guess: Optional[LuckCycleRecord] = None,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    first_cycle_age: int = FIRST_CYCLE_AGE,
    cycle_years: int = CYCLE_YEARS,
) -> LuckCyclesView:
    """
    Resolve the current and next luck cycle at ``reference``.

    :param records: cycle records in index order, Pre-Luck Era first
    :param birth: timezone-aware birth instant
    :param reference: timezone-aware "now"
    :param time_known: False triggers bound estimation
    :param day_master: used to derive missing Ten Gods
    :param upstream_guess: the oracle's own current-cycle lookup, if any
    :param strategies: resolution policy, tried in order
    """
    reference = reference.astimezone(birth.tzinfo)
    cycles = resolve_bounds(records, birth, time_known, first_cycle_age, cycle_years)
    ctx = LocatorContext(
        cycles=cycles,
        age=current_age(birth, reference),
        year=reference.year,
        upstream_guess=upstream_guess,
    )

    current, matched = None, None
    for strategy in strategies:
        current = strategy(ctx)
        if current is not None:
            matched = strategy_name(strategy)
            break
    if current is None:
        raise PeriodResolutionError(f"No luck cycle found for age {ctx.age} in {len(cycles)} records")

    if current.is_pre_luck and ctx.age > PRE_LUCK_MAX_AGE:
        rescan = age_range_strategy(ctx)
        logger.warning(
            "Pre-Luck Era selected by %s at age %s; age-range rescan gave %s",
            matched, ctx.age, rescan.label if rescan else None,
        )
        if rescan is not None:
            current, matched = rescan, "age_range_rescan"

    logger.debug("Luck cycle %s (index %s) resolved by %s", current.label, current.index, matched)

    position = cycles.index(current)
    following = cycles[position + 1] if position + 1 < len(cycles) else None

    end = cycle_end_instant(current, birth)
    remaining = remaining_time(reference, end, cycle_years) if end is not None else RemainingTime()

    return LuckCyclesView(
        current=with_ten_god(current, day_master),
        next=with_ten_god(following, day_master),
        current_age=ctx.age,
        remaining=remaining,
        cycle_end=end if end is not None else reference,
        strategy=matched,
    )
