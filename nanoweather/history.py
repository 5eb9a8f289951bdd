"""
Service layer: save and load search history and preferences from the DB.

Every call is best-effort. Failures are logged and reported as a neutral
value (False / [] / None) so persistence never blocks a weather lookup.
"""
import datetime
import logging
from typing import List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import UserPreference, WeatherSearch
from .schemas import ActivityItem, SearchHistoryEntry, WeatherSnapshot

logger = logging.getLogger(__name__)

PREFERENCES_ROW_ID = 1


def time_ago(moment: Optional[datetime.datetime], now: Optional[datetime.datetime] = None) -> str:
    """Compact relative age: 'just now', '5m ago', '3h ago', '2d ago'."""
    if moment is None:
        return "just now"
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


class SearchHistoryService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_weather_search(
        self,
        weather: WeatherSnapshot,
        image_data_url: Optional[str],
        prompt: str,
        search_location: Optional[str] = None,
    ) -> bool:
        """Append one search; returns False when the write failed."""
        if search_location is None:
            search_location = f"{weather.city}, {weather.country}"
        try:
            await self.session.execute(
                insert(WeatherSearch).values(
                    city=weather.city,
                    country=weather.country,
                    temperature=weather.temperature,
                    condition=weather.description,
                    image_data=image_data_url,
                    prompt=prompt,
                    search_location=search_location,
                )
            )
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to save weather search for %s: %s", weather.city, e)
            return False

    async def get_recent_searches(self, limit: int = 15) -> List[SearchHistoryEntry]:
        """Newest searches that produced an image, for the gallery."""
        try:
            rows = (
                await self.session.execute(
                    select(WeatherSearch)
                    .where(WeatherSearch.image_data.is_not(None))
                    .order_by(WeatherSearch.searched_at.desc())
                    .limit(limit)
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch recent searches: %s", e)
            return []
        return [SearchHistoryEntry.model_validate(r) for r in rows]

    async def get_recent_activity(self, limit: int = 10) -> List[ActivityItem]:
        try:
            rows = (
                await self.session.execute(
                    select(
                        WeatherSearch.id,
                        WeatherSearch.city,
                        WeatherSearch.country,
                        WeatherSearch.temperature,
                        WeatherSearch.condition,
                        WeatherSearch.searched_at,
                    )
                    .order_by(WeatherSearch.searched_at.desc())
                    .limit(limit)
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch recent activity: %s", e)
            return []
        now = datetime.datetime.now(datetime.timezone.utc)
        return [
            ActivityItem(
                id=r.id,
                city=r.city,
                country=r.country,
                temperature=r.temperature,
                condition=r.condition,
                searched_at=r.searched_at,
                time_ago=time_ago(r.searched_at, now),
            )
            for r in rows
        ]

    async def count_searches(self) -> int:
        try:
            return (await self.session.execute(select(func.count(WeatherSearch.id)))).scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to count searches: %s", e)
            return 0

    async def get_favorite_city(self) -> Optional[str]:
        try:
            row = (
                await self.session.execute(
                    select(UserPreference.favorite_city).where(UserPreference.id == PREFERENCES_ROW_ID)
                )
            ).first()
        except SQLAlchemyError as e:
            logger.error("Failed to read favorite city: %s", e)
            return None
        return row.favorite_city if row else None

    async def set_favorite_city(self, city: str) -> bool:
        try:
            res = await self.session.execute(
                update(UserPreference)
                .where(UserPreference.id == PREFERENCES_ROW_ID)
                .values(favorite_city=city)
            )
            if res.rowcount == 0:
                await self.session.execute(
                    insert(UserPreference).values(id=PREFERENCES_ROW_ID, favorite_city=city)
                )
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to set favorite city: %s", e)
            return False
