"""
Отправка уведомлений пользователям через Telegram
"""
import logging
import re
from typing import Dict, Iterable, List

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError

from database.repository import SubscriptionRepository, UserRepository
from services.change_detector import ScheduleEvent

logger = logging.getLogger(__name__)

MESSAGE_LIMIT = 4000

# Служебные символы MarkdownV2, кроме * и _, которыми размечены сами тексты
_ESCAPE_RE = re.compile(r'([.\-<>()\[\]!|={}#+~`])')

# Разметка, которая в пользовательском тексте должна выводиться как есть
_FRAGMENT_RE = re.compile(r'([\\_*])')


def escape_markdown(text: str) -> str:
    """Экранирование служебных символов MarkdownV2 во всём сообщении"""
    return _ESCAPE_RE.sub(r'\\\1', text)


def escape_fragment(text) -> str:
    """
    Экранирование подставляемого в сообщение текста: ввода пользователя,
    имён, текстов исключений. Остальные символы экранирует escape_markdown.
    """
    return _FRAGMENT_RE.sub(r'\\\1', str(text))


def _hard_cut(line: str, limit: int) -> int:
    """Позиция разреза длинной строки, не отделяющая \\ от следующего символа"""
    cut = limit
    backslashes = len(line[:cut]) - len(line[:cut].rstrip('\\'))
    if backslashes % 2:
        cut -= 1
    return cut


def split_message(text: str, limit: int = MESSAGE_LIMIT) -> List[str]:
    """Разбиение длинного сообщения по строкам"""
    if len(text) <= limit:
        return [text]

    parts = []
    current_part = ''
    for line in text.split('\n'):
        while len(line) > limit:
            if current_part:
                parts.append(current_part)
                current_part = ''
            cut = _hard_cut(line, limit)
            parts.append(line[:cut])
            line = line[cut:]
        candidate = f"{current_part}\n{line}" if current_part else line
        if len(candidate) > limit:
            parts.append(current_part)
            current_part = line
        else:
            current_part = candidate
    if current_part:
        parts.append(current_part)
    return parts


class Notifier:
    """Отправка сообщений и рассылка уведомлений о расписании"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, chat_id: int, text: str) -> bool:
        """Отправка сообщения; ошибки доставки только логируются"""
        ok = True
        for part in split_message(escape_markdown(text)):
            try:
                await self.bot.send_message(chat_id, part, parse_mode=ParseMode.MARKDOWN_V2)
            except TelegramAPIError as e:
                logger.error(f"Не удалось отправить сообщение {chat_id}: {e}")
                ok = False
        return ok

    async def dispatch(self, events: Iterable[ScheduleEvent]) -> Dict[int, List[str]]:
        """
        Рассылка событий расписания подписчикам.

        Все события для одного получателя собираются в одно сообщение.
        Возвращает получателей и отправленные им строки.
        """
        recipients: Dict[int, List[str]] = {}
        for event in events:
            chat_ids = SubscriptionRepository.get_subscribers(
                event.route, event.weekday, seats_only=event.seats_only
            )
            for chat_id in chat_ids:
                recipients.setdefault(chat_id, []).append(event.describe())

        for chat_id, lines in recipients.items():
            await self.send(chat_id, '\n'.join(lines))
        if recipients:
            logger.info(f"Уведомления отправлены {len(recipients)} получателям")
        return recipients

    async def notify_admins(self, text: str, exclude: Iterable[int] = ()):
        """Уведомление всех администраторов, кроме exclude"""
        for admin_id in UserRepository.get_admin_ids(exclude=exclude):
            await self.send(admin_id, text)

    async def notify_all(self, text: str):
        """Уведомление всех незаблокированных пользователей"""
        for chat_id in UserRepository.get_active_ids():
            await self.send(chat_id, text)
