"""
Хранилище расписаний маршрутов в памяти процесса
"""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from database.models import ScheduleSnapshot
from utils.time_utils import weekday_of

logger = logging.getLogger(__name__)


class ScheduleStore:
    """
    Расписания по маршрутам: маршрут -> (дата -> места, время наблюдения).

    Для каждого маршрута есть свой asyncio.Lock; опрос маршрута выполняется
    под ним, чтобы срабатывания таймера одного маршрута не пересекались.
    """

    def __init__(self):
        self._schedules: Dict[str, ScheduleSnapshot] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, route: str) -> asyncio.Lock:
        """Блокировка маршрута"""
        if route not in self._locks:
            self._locks[route] = asyncio.Lock()
        return self._locks[route]

    def snapshot(self, route: str) -> ScheduleSnapshot:
        """Копия расписания маршрута"""
        return {
            key: replace(entry)
            for key, entry in self._schedules.get(route, {}).items()
        }

    def seed(self, route: str, snapshot: ScheduleSnapshot):
        """Первичная загрузка: расписание маршрута заменяется целиком"""
        self._schedules[route] = {key: replace(entry) for key, entry in snapshot.items()}

    def merge(self, route: str, snapshot: ScheduleSnapshot):
        """Обновление: перезаписываются только даты из нового расписания"""
        schedule = self._schedules.setdefault(route, {})
        for key, entry in snapshot.items():
            schedule[key] = replace(entry)

    def remove(self, route: str):
        """Полное удаление маршрута"""
        self._schedules.pop(route, None)

    def evict(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Удаление дат, наблюдавшихся раньше чем max_age назад"""
        due_date = (now or datetime.now()) - max_age
        removed = 0
        for route, schedule in self._schedules.items():
            stale = [key for key, entry in schedule.items() if entry.observed_at < due_date]
            for key in stale:
                del schedule[key]
            removed += len(stale)
            if stale:
                logger.debug(f"Маршрут {route}: удалено {len(stale)} устаревших дат")
        return removed

    def available_seats(self, route: str, weekdays: Iterable[str]) -> List[Tuple[str, int]]:
        """Даты маршрута со свободными местами в указанные дни недели"""
        days = set(weekdays)
        return [
            (key, entry.seats)
            for key, entry in self._schedules.get(route, {}).items()
            if entry.seats != 0 and weekday_of(key) in days
        ]
