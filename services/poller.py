"""
Получение расписания маршрута с повторными попытками
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from config import settings
from database.models import ScheduleSnapshot
from services.shuttle_client import ShuttleClient
from utils.errors import TransientFetchError
from utils.time_utils import normalize_schedule

logger = logging.getLogger(__name__)


class RoutePoller:
    """
    Цикл получения расписания для маршрута.

    Каждая попытка выполняет запрос, разбор и нормализацию. Временные ошибки
    расходуют попытку, SessionExpired пробрасывается сразу.
    """

    def __init__(self, client: ShuttleClient,
                 attempts: int = settings.FETCH_ATTEMPTS,
                 retry_delay: float = settings.FETCH_RETRY_DELAY,
                 clock: Callable[[], datetime] = datetime.now):
        self.client = client
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._clock = clock

    async def fetch(self, route: str) -> ScheduleSnapshot:
        """Получение нормализованного расписания маршрута"""
        origin, destination = self.client.destinations.split_route(route)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.attempts + 1):
            try:
                entries = await self.client.fetch_schedules(origin, destination)
                return normalize_schedule(entries, now=self._clock())
            except TransientFetchError as e:
                last_error = e
                logger.warning(
                    f"Получение расписания для маршрута {route} "
                    f"не удалось с попытки {attempt}: {e}"
                )
            if attempt < self.attempts and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay * attempt)

        raise TransientFetchError(
            f"Schedule for route {route} couldn't be fetched "
            f"after {self.attempts} attempts: {last_error}"
        )
