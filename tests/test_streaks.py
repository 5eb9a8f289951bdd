"""
Unit tests for streak bookkeeping and the streak stores.
"""
import asyncio
import datetime

import pytest

from nanoweather.schemas import StreakState
from nanoweather.streaks import (
    ACHIEVEMENTS,
    MemoryStreakStore,
    SqlStreakStore,
    StreakConflictError,
    StreakTracker,
    apply_decay,
    record_search,
    today_in,
)

DAY = datetime.timedelta(days=1)
D0 = datetime.date(2026, 10, 18)


def run_days(days, state=None):
    """Record one search on each given date, returning every update."""
    state = state or StreakState()
    updates = []
    for day in days:
        update = record_search(state, day)
        updates.append(update)
        state = update.state
    return updates


def test_first_search_from_empty_state():
    update = record_search(StreakState(), D0)

    assert update.state.current_streak == 1
    assert update.state.longest_streak == 1
    assert update.state.total_searches == 1
    assert update.state.achievements == ["first_search"]
    assert update.state.last_check_date == "2026-10-18"
    assert update.new_achievement == "First Steps"


def test_record_search_does_not_mutate_input():
    state = StreakState()

    record_search(state, D0)

    assert state.total_searches == 0
    assert state.achievements == []


def test_same_day_searches_only_count():
    first, second = run_days([D0, D0])

    assert second.state.current_streak == first.state.current_streak == 1
    assert second.state.total_searches == 2
    assert second.unlocked == []
    assert second.new_achievement is None


def test_consecutive_day_extends_streak():
    updates = run_days([D0, D0 + DAY, D0 + 2 * DAY])

    assert [u.state.current_streak for u in updates] == [1, 2, 3]
    assert updates[-1].new_achievement == "Getting Hooked"


def test_gap_restarts_streak_at_one():
    updates = run_days([D0, D0 + DAY, D0 + 3 * DAY])

    assert updates[-1].state.current_streak == 1
    assert updates[-1].state.longest_streak == 2


def test_future_last_date_counts_as_today():
    """Test a clock moving backwards never rewinds lastCheckDate."""
    state = StreakState(current_streak=4, longest_streak=4, last_check_date="2026-10-20",
                        total_searches=4, achievements=["first_search", "streak_3"])

    update = record_search(state, D0)

    assert update.state.last_check_date == "2026-10-20"
    assert update.state.current_streak == 4
    assert update.state.total_searches == 5


def test_longest_never_below_current():
    days = [D0, D0 + DAY, D0 + DAY, D0 + 2 * DAY, D0 + 6 * DAY, D0 + 7 * DAY,
            D0 + 8 * DAY, D0 + 9 * DAY, D0 + 20 * DAY]

    for update in run_days(days):
        assert update.state.longest_streak >= update.state.current_streak


def test_achievements_grow_without_duplicates():
    days = [D0 + i * DAY for i in range(31)] + [D0 + 30 * DAY] * 80
    seen = []

    for update in run_days(days):
        assert update.state.achievements[: len(seen)] == seen
        assert len(set(update.state.achievements)) == len(update.state.achievements)
        seen = list(update.state.achievements)

    assert set(seen) == {a.id for a in ACHIEVEMENTS}


def test_only_first_new_achievement_is_announced():
    """Test simultaneous unlocks announce the earliest in checklist order."""
    state = StreakState(current_streak=2, longest_streak=2, last_check_date="2026-10-17",
                        total_searches=9, achievements=["first_search"])

    update = record_search(state, D0)

    assert update.unlocked == ["streak_3", "searches_10"]
    assert update.new_achievement == "Getting Hooked"


def test_decay_resets_stale_streak():
    state = StreakState(current_streak=5, longest_streak=5, last_check_date="2026-10-15",
                        total_searches=12)

    decayed = apply_decay(state, D0)

    assert decayed.current_streak == 0
    assert decayed.longest_streak == 5
    assert decayed.total_searches == 12
    assert state.current_streak == 5


def test_decay_keeps_yesterdays_streak():
    state = StreakState(current_streak=5, longest_streak=5, last_check_date="2026-10-17")

    assert apply_decay(state, D0).current_streak == 5


def test_today_in_zone():
    now = datetime.datetime(2026, 10, 18, 23, 30, tzinfo=datetime.timezone.utc)

    assert today_in("UTC", now) == D0
    assert today_in("Asia/Tokyo", now) == D0 + DAY
    assert today_in("America/Los_Angeles", now) == D0


# ---------- Stores ----------
def fixed_clock(day=D0):
    return lambda: datetime.datetime.combine(day, datetime.time(12), tzinfo=datetime.timezone.utc)


@pytest.mark.asyncio
async def test_memory_store_serializes_concurrent_updates():
    store = MemoryStreakStore()
    tracker = StreakTracker(store, clock=fixed_clock())

    await asyncio.gather(*(tracker.record_search("c1") for _ in range(20)))

    state = await store.load("c1")
    assert state.total_searches == 20
    assert store.version("c1") == 20


@pytest.mark.asyncio
async def test_sql_store_roundtrip(session_factory):
    async with session_factory() as session:
        tracker = StreakTracker(SqlStreakStore(session), clock=fixed_clock())
        await tracker.record_search("c1")
        await tracker.record_search("c1")

    async with session_factory() as session:
        state = await SqlStreakStore(session).load("c1")

    assert state.total_searches == 2
    assert state.current_streak == 1
    assert state.achievements == ["first_search"]


@pytest.mark.asyncio
async def test_sql_store_retries_on_stale_version(session_factory):
    """Test a write racing another session re-reads and re-applies."""
    async with session_factory() as seed:
        await SqlStreakStore(seed).update("c1", lambda s: record_search(s, D0))

    async with session_factory() as session, session_factory() as rival:
        store = SqlStreakStore(session)
        calls = []

        def mutate(state):
            calls.append(state.total_searches)
            return record_search(state, D0)

        original_fetch = store._fetch
        raced = []

        async def racing_fetch(client_id):
            row = await original_fetch(client_id)
            # the rival commits between our read and our write, once
            if not raced:
                raced.append(True)
                await SqlStreakStore(rival).update(client_id, lambda s: record_search(s, D0))
            return row

        store._fetch = racing_fetch
        result = await store.update("c1", mutate)

    assert calls == [1, 2]
    assert result.state.total_searches == 3


@pytest.mark.asyncio
async def test_sql_store_gives_up_after_max_attempts(session_factory):
    async with session_factory() as seed:
        await SqlStreakStore(seed).update("c1", lambda s: record_search(s, D0))

    async with session_factory() as session, session_factory() as rival:
        store = SqlStreakStore(session, max_attempts=2)
        original_fetch = store._fetch

        async def always_raced(client_id):
            row = await original_fetch(client_id)
            await SqlStreakStore(rival).update(client_id, lambda s: record_search(s, D0))
            return row

        store._fetch = always_raced
        with pytest.raises(StreakConflictError):
            await store.update("c1", lambda s: record_search(s, D0))


@pytest.mark.asyncio
async def test_tracker_reports_state_when_store_fails():
    """Test persistence failures do not lose the computed update."""

    class BrokenStore(MemoryStreakStore):
        async def update(self, client_id, mutate):
            mutate(StreakState())
            raise StreakConflictError(client_id)

    result = await StreakTracker(BrokenStore(), clock=fixed_clock()).record_search("c1")

    assert result.state.total_searches == 1
    assert result.new_achievement == "First Steps"
