"""
Разбор текстовых команд, проверка прав и маршрутизация по обработчикам
"""
import logging
from typing import Awaitable, Callable, Dict, Tuple

from aiogram import Router, F
from aiogram.types import ErrorEvent, Message

from config import settings
from database.models import AccessLevel
from database.repository import UserRepository
from handlers import admin_handlers, user_handlers
from handlers.context import CommandContext
from services.notifier import Notifier, escape_fragment
from services.runtime import Runtime
from services.schedule_store import ScheduleStore
from utils.errors import PersistenceError, ValidationError
from utils.route_parser import Destinations
from utils.scheduler import RouteLifecycleManager

logger = logging.getLogger(__name__)
router = Router()

Handler = Callable[[CommandContext], Awaitable[None]]

# Минимальный уровень доступа для каждой команды.
# Недостаточный уровень - команда молча игнорируется.
COMMAND_POLICY: Dict[str, Tuple[AccessLevel, Handler]] = {
    'join': (AccessLevel.BLOCKED, user_handlers.cmd_join),
    'add': (AccessLevel.MEMBER, user_handlers.cmd_add),
    'stop': (AccessLevel.MEMBER, user_handlers.cmd_stop),
    'stopall': (AccessLevel.MEMBER, user_handlers.cmd_stopall),
    'info': (AccessLevel.MEMBER, user_handlers.cmd_info),
    'status': (AccessLevel.MEMBER, user_handlers.cmd_status),
    'help': (AccessLevel.MEMBER, user_handlers.cmd_help),
    'admin': (AccessLevel.ADMIN, admin_handlers.cmd_admin),
}

UNKNOWN_COMMAND: Tuple[AccessLevel, Handler] = (AccessLevel.MEMBER, user_handlers.cmd_unknown)


class CommandProcessor:
    """Обработка входящего текста: пользователь, права, команда"""

    def __init__(self, notifier: Notifier, lifecycle: RouteLifecycleManager,
                 store: ScheduleStore, destinations: Destinations,
                 block_removes_subscriptions: bool = settings.BLOCK_REMOVES_SUBSCRIPTIONS):
        self.notifier = notifier
        self.lifecycle = lifecycle
        self.store = store
        self.destinations = destinations
        self.block_removes_subscriptions = block_removes_subscriptions

    async def handle(self, chat_id: int, text: str, name: str):
        """Обработка одного входящего сообщения"""
        tokens = (text or '').lower().split()
        if not tokens:
            return

        try:
            user, created = UserRepository.get_or_create(chat_id, name or '')
        except PersistenceError as e:
            logger.error(f"Не удалось получить пользователя {chat_id}: {e}")
            return
        if created:
            logger.info(f"Новый пользователь {chat_id} ({name})")
            await self.notifier.send(chat_id, user_handlers.WELCOME_TEXT)

        command = tokens[0].replace('/', '', 1)
        required, handler = COMMAND_POLICY.get(command, UNKNOWN_COMMAND)
        if user.access_level < required:
            logger.debug(f"Команда '{command}' от {chat_id} отклонена: {user.access_level.name}")
            return

        ctx = CommandContext(
            chat_id=chat_id,
            name=name or '',
            user=user,
            command=command,
            notifier=self.notifier,
            lifecycle=self.lifecycle,
            store=self.store,
            destinations=self.destinations,
            args=tokens[1:],
            block_removes_subscriptions=self.block_removes_subscriptions
        )
        try:
            await handler(ctx)
        except ValidationError as e:
            await ctx.reply(str(e))
        except PersistenceError as e:
            logger.error(f"Ошибка базы данных при обработке '{command}' от {chat_id}: {e}")
            await ctx.reply(f"*Error:* The request couldn't be processed: {escape_fragment(e)}")


@router.message(F.text)
async def on_message(message: Message, processor: CommandProcessor):
    """Все текстовые сообщения передаются обработчику команд"""
    name = message.chat.first_name or message.chat.title or ''
    await processor.handle(message.chat.id, message.text, name)


@router.errors()
async def on_error(event: ErrorEvent, runtime: Runtime):
    """Непредвиденная ошибка при обработке сообщения останавливает сервис"""
    logger.error(f"Критическая ошибка при обработке сообщения: {event.exception}",
                 exc_info=event.exception)
    runtime.fail(event.exception)
    return True
