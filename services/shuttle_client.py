"""
HTTP-клиент источника расписаний шаттлов
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from config import settings
from utils.errors import ScheduleParseError, SessionExpired, TransientFetchError
from utils.route_parser import Destinations

logger = logging.getLogger(__name__)

SCHEDULES_QUERY = """
query HcvSchedules($pickup: InputCoordinate!, $dropoff: InputCoordinate!, $time: InputTime!) {
  hcvSchedules(pickup: $pickup, dropoff: $dropoff, time: $time) {
    filterDays
    schedules {
      day
      etdTimestampSec
      formattedETD
      seatsAvailable
      __typename
    }
    __typename
  }
}
"""

DEFAULT_HEADERS = {
    'Accept': '*/*',
    'Accept-Encoding': 'gzip',
    'Content-Type': 'application/json',
    'Referer': 'https://m.uber.com/',
    'Origin': 'https://m.uber.com',
    'x-csrf-token': 'x',
}


def parse_schedules(body: str) -> List[Dict[str, Any]]:
    """
    Извлечение строк расписания из ответа GraphQL.

    Ответ с ошибкой "unauthorized" и без данных означает истёкшую сессию.
    Любая другая неожиданная структура считается ошибкой разбора.
    """
    try:
        response = json.loads(body)
    except (TypeError, ValueError) as e:
        raise ScheduleParseError(f"Ответ не является JSON: {e}") from e
    if not isinstance(response, dict):
        raise ScheduleParseError("Ответ не является JSON-объектом")

    errors = response.get('errors')
    if not response.get('data') and errors:
        first = errors[0] if isinstance(errors, list) and errors else {}
        message = first.get('message') if isinstance(first, dict) else None
        if message == 'unauthorized':
            raise SessionExpired(
                "It seems like the session has expired, please log in on https://m.uber.com/"
            )
        raise ScheduleParseError(f"Источник расписаний вернул ошибку: {message or errors!r}")

    try:
        schedules = response['data']['hcvSchedules']['schedules']
    except (KeyError, TypeError) as e:
        raise ScheduleParseError(f"В ответе нет расписания: {e}") from e
    if not isinstance(schedules, list):
        raise ScheduleParseError("Расписание в ответе не является списком")
    return schedules


class ShuttleClient:
    """Клиент GraphQL-эндпоинта расписаний"""

    def __init__(self, destinations: Destinations,
                 cookies: str = settings.SHUTTLE_COOKIES,
                 endpoint: str = settings.SHUTTLE_ENDPOINT,
                 timeout: float = settings.FETCH_TIMEOUT):
        self.destinations = destinations
        self.endpoint = endpoint
        self._headers = dict(DEFAULT_HEADERS)
        if cookies:
            self._headers['Cookie'] = cookies
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def build_payload(self, origin: str, destination: str) -> Dict[str, Any]:
        """Тело запроса для пары точек"""
        return {
            'operationName': 'HcvSchedules',
            'variables': {
                'dropoff': dict(self.destinations.coordinates(destination)),
                'pickup': dict(self.destinations.coordinates(origin)),
                'time': {'arrivalSec': 0, 'pickupSec': 0},
            },
            'query': SCHEDULES_QUERY,
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers, timeout=self._timeout)
        return self._session

    async def fetch(self, origin: str, destination: str) -> str:
        """Запрос расписания, возвращает сырое тело ответа"""
        session = await self._get_session()
        payload = self.build_payload(origin, destination)
        try:
            async with session.post(self.endpoint, json=payload) as resp:
                body = await resp.text()
                # 401/403 тоже несут JSON с ошибкой авторизации
                if resp.status >= 400 and resp.status not in (401, 403):
                    raise TransientFetchError(f"HTTP {resp.status} от источника расписаний")
                return body
        except asyncio.TimeoutError as e:
            raise TransientFetchError(f"Таймаут запроса {origin}-{destination}") from e
        except aiohttp.ClientError as e:
            raise TransientFetchError(f"Ошибка соединения: {e}") from e

    async def fetch_schedules(self, origin: str, destination: str) -> List[Mapping[str, Any]]:
        """Запрос и разбор расписания"""
        body = await self.fetch(origin, destination)
        return parse_schedules(body)

    async def confirm_access(self):
        """Проверка действительности сессии при запуске"""
        destination = self.destinations.names[0]
        try:
            await self.fetch_schedules(self.destinations.hub, destination)
        except SessionExpired:
            raise SessionExpired(
                "It seems like there is no active session, please log in on https://m.uber.com/"
            )
        logger.info("Доступ к источнику расписаний подтверждён")

    async def close(self):
        """Закрытие HTTP-сессии"""
        if self._session is not None and not self._session.closed:
            await self._session.close()
