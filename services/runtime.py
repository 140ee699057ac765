"""
Координация остановки процесса
"""
import asyncio
import logging
from typing import Optional

from utils.errors import SessionExpired

logger = logging.getLogger(__name__)


class Runtime:
    """
    Причина и сигнал остановки сервиса.

    Фатальные ошибки (SessionExpired, непредвиденные исключения) не
    завершают процесс напрямую: они записываются сюда, а bot.py выполняет
    штатную остановку с уведомлением пользователей.
    """

    def __init__(self):
        self.stop_event = asyncio.Event()
        self.cause: Optional[BaseException] = None

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    @property
    def session_expired(self) -> bool:
        return isinstance(self.cause, SessionExpired)

    @property
    def exit_code(self) -> int:
        return 0 if self.cause is None else 1

    def fail(self, exc: BaseException):
        """Фатальная ошибка: запрос остановки с указанием причины"""
        if self.cause is None or (isinstance(exc, SessionExpired) and not self.session_expired):
            self.cause = exc
        if not self.stopping:
            logger.critical(f"Остановка сервиса из-за ошибки: {exc}")
        self.stop_event.set()

    def stop(self):
        """Штатная остановка (сигнал или Ctrl+C)"""
        if not self.stopping:
            logger.info("Получен запрос на остановку")
        self.stop_event.set()

    async def wait(self):
        await self.stop_event.wait()
