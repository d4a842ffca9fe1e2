import random
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from dateutil.relativedelta import relativedelta

from luck_cycles import (
    LocatorContext,
    PeriodResolutionError,
    current_age,
    last_record_strategy,
    locate,
    remaining_time,
    resolve_bounds,
)
from models import BranchDescriptor, LuckCycleRecord, RemainingTime, ResolvedCycle, StemDescriptor
from ten_gods import TenGod

TZ = ZoneInfo("Asia/Shanghai")
BIRTH = datetime(1978, 3, 10, 12, 0, tzinfo=TZ)
PILLARS = ["丙辰", "丁巳", "戊午", "己未", "庚申", "辛酉", "壬戌", "癸亥"]
FIRST_AGE = 7
DAY_MASTER = StemDescriptor.from_character("甲")


def _records(time_known=True):
    records = [LuckCycleRecord(index=0, age_start=0, year_start=1978, year_end=1984)]
    for i, gz in enumerate(PILLARS, start=1):
        stem = StemDescriptor.from_character(gz[0])
        branch = BranchDescriptor.from_character(gz[1])
        if time_known:
            age = FIRST_AGE + 10 * (i - 1)
            records.append(LuckCycleRecord(
                index=i, stem=stem, branch=branch,
                age_start=age, year_start=1978 + age, year_end=1978 + age + 9,
            ))
        else:
            records.append(LuckCycleRecord(index=i, stem=stem, branch=branch))
    return records


def test_known_time_age_45():
    records = _records()
    view = locate(records, BIRTH, datetime(2023, 6, 1, 10, 30, tzinfo=TZ), True, day_master=DAY_MASTER)
    assert view.current_age == 45
    assert view.current.index == 4
    assert view.current.contains_age(45)
    assert not view.current.is_pre_luck
    assert view.next.index == 5
    assert view.strategy == "age_range"


def test_next_is_following_record():
    view = locate(_records(), BIRTH, datetime(2000, 1, 1, tzinfo=TZ), True)
    assert view.next.index == view.current.index + 1


def test_partition_of_ages():
    cycles = resolve_bounds(_records(), BIRTH, True)
    assert cycles[0].is_pre_luck
    assert (cycles[0].age_start, cycles[0].age_end) == (0, FIRST_AGE - 1)
    last_age = cycles[-1].age_end
    for age in range(0, last_age + 1):
        assert sum(1 for c in cycles if c.contains_age(age)) == 1


def test_upstream_guess_accepted_when_age_agrees():
    records = _records()
    view = locate(records, BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True, upstream_guess=records[4])
    assert view.current.index == 4
    assert view.strategy == "upstream_guess"


def test_wrong_upstream_guess_rejected():
    records = _records()
    view = locate(records, BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True, upstream_guess=records[5])
    assert view.current.index == 4
    assert view.strategy == "age_range"


def test_unknown_time_estimates_every_start():
    records = _records(time_known=False)
    cycles = resolve_bounds(records, BIRTH, False)
    for cycle in cycles[1:]:
        assert cycle.age_start == 8 + 10 * (cycle.index - 1)
        assert cycle.age_start_estimated
        assert cycle.year_start == 1978 + cycle.age_start
        assert cycle.year_end == cycle.year_start + 9
    assert cycles[0].age_end == 7


def test_unknown_time_never_pre_luck_after_ten():
    records = _records(time_known=False)
    for years in range(11, 80, 3):
        reference = BIRTH + relativedelta(years=years, days=30)
        view = locate(records, BIRTH, reference, False)
        assert not view.current.is_pre_luck
        assert view.current.contains_age(view.current_age)


def test_records_are_not_mutated():
    records = _records(time_known=False)
    snapshot = [r.model_dump() for r in records]
    locate(records, BIRTH, datetime(2023, 6, 1, tzinfo=TZ), False, day_master=DAY_MASTER)
    assert [r.model_dump() for r in records] == snapshot


def test_ten_god_derived_from_day_master():
    view = locate(_records(), BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True, day_master=DAY_MASTER)
    # 甲 vs 己
    assert view.current.ten_god == TenGod.ZHENG_CAI
    assert view.current.ten_god_derived


def test_pre_luck_has_no_ten_god():
    view = locate(_records(), BIRTH, datetime(1980, 1, 1, tzinfo=TZ), True, day_master=DAY_MASTER)
    assert view.current.is_pre_luck
    assert view.current.ten_god is None
    assert view.next.index == 1


def test_guard_rescans_when_pre_luck_picked_late():
    def always_pre_luck(ctx):
        return ctx.cycles[0]

    view = locate(_records(), BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True, strategies=(always_pre_luck,))
    assert view.current.index == 4
    assert view.strategy == "age_range_rescan"


def test_no_strategy_matches():
    with pytest.raises(PeriodResolutionError):
        locate(_records(), BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True, strategies=())


def test_reference_before_birth():
    with pytest.raises(ValueError):
        current_age(BIRTH, BIRTH - timedelta(days=1))


def test_remaining_time_round_trip():
    reference = datetime(2023, 6, 1, 10, 30, tzinfo=TZ)
    view = locate(_records(), BIRTH, reference, True)
    assert view.cycle_end == datetime(2025, 3, 10, 12, 0, tzinfo=TZ)
    assert view.remaining == RemainingTime(years=1, months=9, days=9, hours=1, minutes=30)

    r = view.remaining
    landed = reference + relativedelta(years=r.years, months=r.months) + timedelta(
        days=r.days, hours=r.hours, minutes=r.minutes
    )
    assert landed == view.cycle_end


def test_reference_in_other_timezone():
    reference = datetime(2023, 6, 1, 2, 30, tzinfo=ZoneInfo("UTC"))
    view = locate(_records(), BIRTH, reference, True)
    assert view.remaining == RemainingTime(years=1, months=9, days=9, hours=1, minutes=30)


def test_remaining_time_capped_at_one_cycle():
    reference = datetime(2000, 1, 1, tzinfo=TZ)
    assert remaining_time(reference, reference + relativedelta(years=12)) == RemainingTime(years=10)


def test_remaining_time_past_end_is_zero():
    reference = datetime(2000, 1, 1, tzinfo=TZ)
    assert remaining_time(reference, reference - timedelta(hours=1)) == RemainingTime()


def test_clamped_first_cycle_ends_before_next():
    records = [
        LuckCycleRecord(index=0, age_start=0, year_start=1978, year_end=1978),
        LuckCycleRecord(index=1, stem=StemDescriptor.from_character("丙"), branch=BranchDescriptor.from_character("辰"),
                        age_start=1, year_start=1979, year_end=1987),
        LuckCycleRecord(index=2, stem=StemDescriptor.from_character("丁"), branch=BranchDescriptor.from_character("巳"),
                        age_start=10, year_start=1988, year_end=1997),
        LuckCycleRecord(index=3, stem=StemDescriptor.from_character("戊"), branch=BranchDescriptor.from_character("午"),
                        age_start=20, year_start=1998, year_end=2007),
    ]
    cycles = resolve_bounds(records, BIRTH, True)
    assert (cycles[0].age_start, cycles[0].age_end) == (0, 0)
    assert (cycles[1].age_start, cycles[1].age_end) == (1, 9)
    for age in range(0, cycles[-1].age_end + 1):
        assert sum(1 for c in cycles if c.contains_age(age)) == 1

    view = locate(records, BIRTH, datetime(1988, 6, 1, tzinfo=TZ), True)
    assert view.current_age == 10
    assert view.current.index == 2
    assert view.cycle_end == datetime(1998, 3, 10, 12, 0, tzinfo=TZ)


def test_unknown_time_pre_luck_years_are_derived():
    records = _records(time_known=False)
    records[0] = LuckCycleRecord(index=0, age_start=0, year_start=2020, year_end=1977)
    pre_luck = resolve_bounds(records, BIRTH, False)[0]
    assert pre_luck.year_start == 1978
    assert pre_luck.year_start <= pre_luck.year_end
    assert pre_luck.year_end == pre_luck.year_start + pre_luck.age_end
    assert pre_luck.year_start_estimated
    assert pre_luck.year_end_estimated


def test_year_range_used_when_ages_missing():
    records = [
        LuckCycleRecord(index=r.index, stem=r.stem, branch=r.branch,
                        year_start=r.year_start, year_end=r.year_end)
        if not r.is_pre_luck else r
        for r in _records()
    ]
    view = locate(records, BIRTH, datetime(2023, 6, 1, tzinfo=TZ), True)
    assert view.current.index == 4
    assert view.current.age_start is None
    assert view.strategy == "year_range"
    assert view.remaining == RemainingTime()


def test_reference_past_last_cycle():
    reference = datetime(2068, 6, 1, tzinfo=TZ)
    view = locate(_records(), BIRTH, reference, True)
    assert view.current_age == 90
    assert view.current.index == len(PILLARS)
    assert view.next is None
    assert view.strategy == "last_record"
    assert view.remaining == RemainingTime()


def test_last_record_skips_trailing_pre_luck():
    cycles = (
        ResolvedCycle(index=1, age_start=7, age_end=16),
        ResolvedCycle(index=2),
        ResolvedCycle(index=0, age_start=0, age_end=6, is_pre_luck=True),
    )
    found = last_record_strategy(LocatorContext(cycles=cycles, age=40, year=2018))
    assert found.index == 1


def test_only_pre_luck_record_stands():
    records = [LuckCycleRecord(index=0, age_start=0, year_start=1978, year_end=1984)]
    view = locate(records, BIRTH, datetime(2008, 6, 1, tzinfo=TZ), True)
    assert view.current_age == 30
    assert view.current.is_pre_luck
    assert view.strategy == "last_record"
    assert view.next is None


def test_remaining_time_from_leap_day():
    reference = datetime(2012, 2, 29, 20, 27, tzinfo=TZ)
    end = datetime(2014, 1, 8, 21, 48, tzinfo=TZ)
    assert remaining_time(reference, end) == RemainingTime(years=1, months=10, days=10, hours=1, minutes=21)


@pytest.mark.parametrize("zone", ["Asia/Shanghai", "America/New_York"])
def test_remaining_time_lands_on_end(zone):
    tz = ZoneInfo(zone)
    rng = random.Random(20120229)
    leap_years = [2000, 2004, 2008, 2012, 2016, 2020, 2024]
    for step in range(300):
        if step % 3 == 0:
            reference = datetime(rng.choice(leap_years), 2, 29, rng.randrange(24), rng.randrange(60), tzinfo=tz)
        else:
            reference = datetime(1990, 1, 1, tzinfo=tz) + timedelta(minutes=rng.randrange(40 * 365 * 1440))
        if step % 5 == 0:
            end = datetime(reference.year + rng.randrange(1, 9), 2, 28, rng.randrange(24), rng.randrange(60), tzinfo=tz)
            if end.year % 4 == 0:
                end = end + timedelta(days=1)
        else:
            end = reference + timedelta(minutes=rng.randrange(1, 9 * 365 * 1440))

        r = remaining_time(reference, end)
        landed = reference + relativedelta(years=r.years, months=r.months) + timedelta(
            days=r.days, hours=r.hours, minutes=r.minutes
        )
        assert landed == end, (reference, end, r)
        assert r.months < 12
