"""
Search streaks and achievements.

A streak counts consecutive calendar days with at least one search. State is
kept per client in a StreakStore whose `update` is a single read-modify-write
transaction, so two concurrent searches cannot overwrite each other.
"""
import asyncio
import datetime
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import StreakRecord
from .prompts import Clock, utc_now
from .schemas import StreakState

logger = logging.getLogger(__name__)


class Achievement(NamedTuple):
    id: str
    name: str
    description: str
    threshold: int
    metric: str  # "searches" | "streak"


# Evaluated in this order; the first newly unlocked one is announced.
ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement("first_search", "First Steps", "Made your first weather search", 1, "searches"),
    Achievement("streak_3", "Getting Hooked", "3 day streak", 3, "streak"),
    Achievement("streak_7", "Weather Watcher", "7 day streak", 7, "streak"),
    Achievement("streak_14", "Meteorologist", "14 day streak", 14, "streak"),
    Achievement("streak_30", "Weather Wizard", "30 day streak", 30, "streak"),
    Achievement("searches_10", "Explorer", "10 cities searched", 10, "searches"),
    Achievement("searches_50", "Globetrotter", "50 cities searched", 50, "searches"),
    Achievement("searches_100", "World Traveler", "100 cities searched", 100, "searches"),
)

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


class StreakConflictError(Exception):
    """Optimistic update kept losing to concurrent writers."""


@dataclass
class StreakUpdate:
    state: StreakState
    unlocked: List[str] = field(default_factory=list)

    @property
    def new_achievement(self) -> Optional[str]:
        """Display name of the first achievement unlocked by this update."""
        if not self.unlocked:
            return None
        return ACHIEVEMENTS_BY_ID[self.unlocked[0]].name


def _parse_date(value: Optional[str]) -> Optional[datetime.date]:
    if not value:
        return None
    return datetime.date.fromisoformat(value)


def evaluate_achievements(state: StreakState) -> List[str]:
    """Unlock every reached achievement not yet held; returns the new ids."""
    unlocked = []
    for achievement in ACHIEVEMENTS:
        value = state.total_searches if achievement.metric == "searches" else state.current_streak
        if value >= achievement.threshold and achievement.id not in state.achievements:
            state.achievements.append(achievement.id)
            unlocked.append(achievement.id)
    return unlocked


def record_search(state: StreakState, today: datetime.date) -> StreakUpdate:
    """Apply one search made on `today` and return the new state."""
    state = state.model_copy(deep=True)
    state.total_searches += 1

    last = _parse_date(state.last_check_date)
    yesterday = today - datetime.timedelta(days=1)
    if last is None or last < today:
        if last == yesterday:
            state.current_streak += 1
        else:
            state.current_streak = 1
        state.last_check_date = today.isoformat()
    # a last date ahead of today (clock skew) counts as today

    state.longest_streak = max(state.longest_streak, state.current_streak)
    unlocked = evaluate_achievements(state)
    return StreakUpdate(state=state, unlocked=unlocked)


def apply_decay(state: StreakState, today: datetime.date) -> StreakState:
    """Zero a streak whose last search is older than yesterday."""
    last = _parse_date(state.last_check_date)
    if last is not None and last < today - datetime.timedelta(days=1) and state.current_streak:
        state = state.model_copy(update={"current_streak": 0})
    return state


Mutation = Callable[[StreakState], StreakUpdate]


class StreakStore(ABC):
    @abstractmethod
    async def load(self, client_id: str) -> StreakState:
        ...

    @abstractmethod
    async def update(self, client_id: str, mutate: Mutation) -> StreakUpdate:
        """Atomically read, mutate and persist the state for `client_id`."""


class MemoryStreakStore(StreakStore):
    def __init__(self):
        self._states: Dict[str, Tuple[int, dict]] = {}
        self._lock = asyncio.Lock()

    def version(self, client_id: str) -> int:
        return self._states.get(client_id, (0, {}))[0]

    async def load(self, client_id: str) -> StreakState:
        _, payload = self._states.get(client_id, (0, {}))
        return StreakState.model_validate(payload)

    async def update(self, client_id: str, mutate: Mutation) -> StreakUpdate:
        async with self._lock:
            version, payload = self._states.get(client_id, (0, {}))
            result = mutate(StreakState.model_validate(payload))
            self._states[client_id] = (version + 1, result.state.model_dump())
            return result


class SqlStreakStore(StreakStore):
    """
    Streak rows in `streak_states`, updated with an optimistic version check.

    A write only lands if the version it read is still current; otherwise
    the mutation is re-run against the fresh row.
    """

    def __init__(self, session: AsyncSession, max_attempts: int = 5):
        self.session = session
        self.max_attempts = max_attempts

    async def _fetch(self, client_id: str):
        return (
            await self.session.execute(
                select(StreakRecord.version, StreakRecord.payload).where(
                    StreakRecord.client_id == client_id
                )
            )
        ).first()

    async def load(self, client_id: str) -> StreakState:
        row = await self._fetch(client_id)
        return StreakState.model_validate(row.payload) if row else StreakState()

    async def update(self, client_id: str, mutate: Mutation) -> StreakUpdate:
        for attempt in range(1, self.max_attempts + 1):
            try:
                row = await self._fetch(client_id)
                current = StreakState.model_validate(row.payload) if row else StreakState()
                result = mutate(current)
                payload = result.state.model_dump()
                now = datetime.datetime.now(datetime.timezone.utc)

                if row is None:
                    try:
                        await self.session.execute(
                            insert(StreakRecord).values(
                                client_id=client_id, version=1, payload=payload, updated_at=now
                            )
                        )
                        await self.session.commit()
                        return result
                    except IntegrityError:
                        await self.session.rollback()
                        logger.debug("Concurrent insert for %s, retrying (%d)", client_id, attempt)
                        continue

                res = await self.session.execute(
                    update(StreakRecord)
                    .where(
                        StreakRecord.client_id == client_id,
                        StreakRecord.version == row.version,
                    )
                    .values(version=row.version + 1, payload=payload, updated_at=now)
                )
                await self.session.commit()
                if res.rowcount == 1:
                    return result
                logger.debug("Stale streak version for %s, retrying (%d)", client_id, attempt)
            except SQLAlchemyError:
                await self.session.rollback()
                raise
        raise StreakConflictError(f"Could not update streak for {client_id}")


def today_in(tz: str, now: datetime.datetime) -> datetime.date:
    """Calendar date at `now` in the IANA zone `tz`."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    return now.astimezone(ZoneInfo(tz)).date()


class StreakTracker:
    def __init__(self, store: StreakStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def current(self, client_id: str, tz: str = "UTC") -> StreakState:
        today = today_in(tz, self.clock())
        try:
            state = await self.store.load(client_id)
        except SQLAlchemyError as e:
            logger.warning("Could not load streak for %s: %s", client_id, e)
            state = StreakState()
        return apply_decay(state, today)

    async def record_search(self, client_id: str, tz: str = "UTC") -> StreakUpdate:
        today = today_in(tz, self.clock())
        attempts: List[StreakUpdate] = []

        def mutate(state: StreakState) -> StreakUpdate:
            result = record_search(state, today)
            attempts.append(result)
            return result

        try:
            return await self.store.update(client_id, mutate)
        except (SQLAlchemyError, StreakConflictError) as e:
            # state still reported to the caller, just not persisted
            logger.warning("Streak for %s not persisted: %s", client_id, e)
            return attempts[-1] if attempts else record_search(StreakState(), today)
