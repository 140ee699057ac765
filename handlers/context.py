"""
Контекст выполнения текстовой команды
"""
from dataclasses import dataclass, field
from typing import List

from database.models import User
from services.notifier import Notifier
from services.schedule_store import ScheduleStore
from utils.route_parser import Destinations
from utils.scheduler import RouteLifecycleManager


@dataclass
class CommandContext:
    """Данные одного входящего сообщения и сервисы для его обработки"""
    chat_id: int
    name: str
    user: User
    command: str
    notifier: Notifier
    lifecycle: RouteLifecycleManager
    store: ScheduleStore
    destinations: Destinations
    args: List[str] = field(default_factory=list)
    block_removes_subscriptions: bool = False

    async def reply(self, text: str):
        """Ответ в чат, из которого пришла команда"""
        await self.notifier.send(self.chat_id, text)
