"""
Планировщик опроса маршрутов
"""
import logging
from datetime import timedelta
from enum import Enum
from typing import Dict, Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from database.repository import SubscriptionRepository
from services.change_detector import detect_changes, detect_freed_seats
from services.notifier import Notifier
from services.poller import RoutePoller
from services.runtime import Runtime
from services.schedule_store import ScheduleStore
from utils.errors import SessionExpired, TransientFetchError, ValidationError

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = 'cleanup_schedules'

ACTIVATION_FETCH_FAILED = "the schedule couldn't be loaded, please try again later"
ACTIVATION_UNKNOWN_ROUTE = "the route is unknown"


class RouteState(Enum):
    """Состояние опроса маршрута"""
    INACTIVE = 'inactive'
    ACTIVATING = 'activating'
    ACTIVE = 'active'


def route_job_id(route: str) -> str:
    return f"route:{route}"


class RouteLifecycleManager:
    """
    Запуск и остановка периодического опроса маршрутов.

    Маршрут активируется при первой подписке (или при запуске сервиса, если
    подписки уже есть) и останавливается, когда уходит последний подписчик.
    """

    def __init__(self, poller: RoutePoller, store: ScheduleStore, notifier: Notifier,
                 runtime: Runtime, scheduler: Optional[AsyncIOScheduler] = None,
                 refresh_minutes: float = settings.REFRESH_RATE_MINUTES,
                 retention_days: int = settings.RETENTION_DAYS,
                 cleanup_hours: int = settings.CLEANUP_INTERVAL_HOURS):
        self.poller = poller
        self.store = store
        self.notifier = notifier
        self.runtime = runtime
        self.scheduler = scheduler or AsyncIOScheduler()
        self.refresh_minutes = refresh_minutes
        self.retention = timedelta(days=retention_days)
        self.cleanup_hours = cleanup_hours
        self._states: Dict[str, RouteState] = {}

    def state(self, route: str) -> RouteState:
        return self._states.get(route, RouteState.INACTIVE)

    def is_active(self, route: str) -> bool:
        return self.state(route) is RouteState.ACTIVE

    async def startup(self):
        """Запуск планировщика и опроса всех маршрутов с подписчиками"""
        self.scheduler.add_job(
            self.evict,
            trigger=IntervalTrigger(hours=self.cleanup_hours),
            id=CLEANUP_JOB_ID,
            name='Очистка устаревших дат расписания',
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Планировщик задач запущен")

        for route in SubscriptionRepository.get_active_routes():
            if await self.activate(route):
                snapshot = self.store.snapshot(route)
                await self.notifier.dispatch(
                    detect_freed_seats(snapshot, snapshot, route, initial=True)
                )

    async def activate(self, route: str, chat_id: Optional[int] = None) -> bool:
        """
        Первичная загрузка расписания и запуск периодического опроса.

        При неудаче маршрут остаётся неактивным, а инициатор (если есть)
        получает сообщение об ошибке.
        """
        async with self.store.lock(route):
            if self.is_active(route):
                return True

            self._states[route] = RouteState.ACTIVATING
            try:
                snapshot = await self.poller.fetch(route)
            except (TransientFetchError, ValidationError) as e:
                self._states[route] = RouteState.INACTIVE
                logger.error(f"Ошибка активации маршрута {route}: {e}")
                if chat_id is not None:
                    reason = (ACTIVATION_UNKNOWN_ROUTE if isinstance(e, ValidationError)
                              else ACTIVATION_FETCH_FAILED)
                    await self.notifier.send(chat_id, f"Error subscribing to route {route}: {reason}")
                return False
            except SessionExpired:
                self._states[route] = RouteState.INACTIVE
                raise

            self.store.seed(route, snapshot)
            self.scheduler.add_job(
                self.refresh,
                trigger=IntervalTrigger(minutes=self.refresh_minutes),
                args=[route],
                id=route_job_id(route),
                name=f'Опрос маршрута {route}',
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )
            self._states[route] = RouteState.ACTIVE
            logger.info(f"Маршрут {route} активирован, дат в расписании: {len(snapshot)}")
            return True

    async def refresh(self, route: str):
        """Периодический опрос маршрута"""
        lock = self.store.lock(route)
        if lock.locked():
            logger.warning(f"Предыдущий опрос маршрута {route} ещё выполняется, пропуск")
            return

        async with lock:
            if not self.is_active(route) or self.runtime.stopping:
                return
            try:
                incoming = await self.poller.fetch(route)
            except TransientFetchError as e:
                logger.warning(f"Расписание маршрута {route} не обновлено, данные устарели: {e}")
                return
            except SessionExpired as e:
                self.runtime.fail(e)
                return
            except Exception as e:
                logger.error(f"Непредвиденная ошибка опроса маршрута {route}: {e}", exc_info=True)
                self.runtime.fail(e)
                return
            if not self.is_active(route):
                return

            # Участок без точек переключения: чтение, сравнение и слияние
            previous = self.store.snapshot(route)
            events = detect_changes(previous, incoming, route)
            self.store.merge(route, incoming)

        if events:
            logger.info(f"Маршрут {route}: событий {len(events)}")
            await self.notifier.dispatch(events)

    def deactivate(self, route: str):
        """Остановка опроса маршрута"""
        if self.scheduler.get_job(route_job_id(route)) is not None:
            self.scheduler.remove_job(route_job_id(route))
        self._states[route] = RouteState.INACTIVE
        self.store.remove(route)
        logger.info(f"Опрос маршрута {route} остановлен")

    def release_unused(self, routes: Iterable[str]):
        """Остановка опроса маршрутов, у которых не осталось подписчиков"""
        remaining = set(SubscriptionRepository.get_active_routes())
        for route in routes:
            if route not in remaining and self.state(route) is not RouteState.INACTIVE:
                self.deactivate(route)

    async def evict(self):
        """Задача очистки устаревших дат расписания"""
        try:
            removed = self.store.evict(self.retention)
            if removed > 0:
                logger.info(f"Удалено {removed} устаревших дат расписания")
        except Exception as e:
            logger.error(f"Ошибка при очистке расписаний: {e}", exc_info=True)

    async def shutdown(self):
        """Остановка планировщика с ожиданием опросов, которые уже выполняются"""
        if self.scheduler.running:
            self.scheduler.pause()
        for route in list(self._states):
            async with self.store.lock(route):
                pass
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Планировщик задач остановлен")
