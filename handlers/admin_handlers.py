"""
Обработчики команд администраторов
"""
import logging
import re
from typing import Awaitable, Callable, Dict, List

from database.models import User
from database.repository import SubscriptionRepository, UserRepository
from handlers.context import CommandContext
from services.notifier import escape_fragment
from utils.errors import PersistenceError

logger = logging.getLogger(__name__)

ADMIN_COMMANDS_TEXT = (
    '_admin add <chat-id>_\nto add a user,\n'
    '_admin admin <chat-id>_\nto make a user an admin, or\n'
    '_admin block <chat-id>_\nto block a user.\n\n'
    'Use\n_admin users_\nto check the user count,\n'
    '_admin requests_\nto check pending requests,\n'
    '_admin blocked_\nto check blocked users,\n'
    '_admin admins_\nto check who is an admin, and\n'
    '_admin active_\nto get a list of all unblocked users.'
)

ADMIN_HELP_TEXT = 'Please enter\n' + ADMIN_COMMANDS_TEXT

NEW_ADMIN_TEXT = '*You have been made admin!*\n\nYou can enter\n' + ADMIN_COMMANDS_TEXT

_CHAT_ID_RE = re.compile(r'\d+')


def format_users(title: str, users: List[User]) -> str:
    """Список пользователей в виде "chat_id (name)" """
    return '\n'.join([title] + [f"{user.chat_id} ({escape_fragment(user.name)})" for user in users])


async def admin_users(ctx: CommandContext):
    """admin users - сводка по пользователям"""
    counts = UserRepository.get_counts()
    await ctx.reply(
        f"*{counts.users - counts.blocked}* current users.\n"
        f"*{counts.pending}* opened the chat.\n"
        f"*{counts.request_sent}* sent a request.\n"
        f"*{counts.blocked - counts.pending}* users were blocked.\n"
        f"*{counts.admins}* current admins."
    )


async def admin_requests(ctx: CommandContext):
    """admin requests - отправленные запросы на вступление"""
    users = UserRepository.get_requests()
    if not users:
        await ctx.reply('There are no pending requests')
        return
    await ctx.reply(format_users("Requests received:", users))


async def admin_blocked(ctx: CommandContext):
    """admin blocked - заблокированные пользователи"""
    users = UserRepository.get_blocked()
    if not users:
        await ctx.reply('There are no blocked users')
        return
    await ctx.reply(format_users("Blocked users:", users))


async def admin_admins(ctx: CommandContext):
    """admin admins - администраторы"""
    users = UserRepository.get_admins()
    if not users:
        await ctx.reply('There are no admins ???')
        return
    await ctx.reply(format_users("Admins:", users))


async def admin_active(ctx: CommandContext):
    """admin active - незаблокированные пользователи"""
    users = UserRepository.get_active()
    if not users:
        await ctx.reply('There are no active users ???')
        return
    await ctx.reply(format_users("Active users:", users))


async def add_user(ctx: CommandContext, target: int):
    """Добавление пользователя в группу"""
    user = UserRepository.get_user(target)
    if user is None:
        await ctx.reply(f"*Error:* There is no request from user '{target}'")
        return
    if not user.blocked:
        await ctx.reply(f"User '{target}' wasn't blocked")
        return

    messages = []
    if not user.pending:
        messages.append("User wasn't pending.")
    try:
        UserRepository.set_member(target)
    except PersistenceError as e:
        messages.append(f"Error while updating user {target}: {escape_fragment(e)}.")
    else:
        logger.info(f"Администратор {ctx.chat_id} добавил пользователя {target}")
        await ctx.notifier.send(target, "You have been added!")
        messages.append(f"Added user {target}.")
        await ctx.notifier.notify_admins(f"Added user {target}.", exclude=[ctx.chat_id])
    await ctx.reply('\n'.join(messages))


async def add_admin(ctx: CommandContext, target: int):
    """Назначение пользователя администратором"""
    user = UserRepository.get_user(target)
    if user is None:
        await ctx.reply(f"*Error:* There is no user '{target}'")
        return
    if not user.blocked and user.admin:
        await ctx.reply(f"User '{target}' wasn't blocked and already is admin")
        return

    messages = []
    if user.admin:
        messages.append("User already was admin, but blocked.")
    if not user.pending:
        messages.append("User wasn't pending.")
    try:
        UserRepository.set_admin(target)
    except PersistenceError as e:
        messages.append(f"Error while updating user {target}: {escape_fragment(e)}.")
    else:
        logger.info(f"Администратор {ctx.chat_id} назначил администратором {target}")
        await ctx.notifier.send(target, NEW_ADMIN_TEXT)
        messages.append(f"Made user {target} admin.")
        await ctx.notifier.notify_admins(f"Made user {target} admin.", exclude=[ctx.chat_id, target])
    await ctx.reply('\n'.join(messages))


async def block_user(ctx: CommandContext, target: int):
    """Блокировка пользователя"""
    if target == ctx.chat_id:
        await ctx.reply("*Error:* You cannot block yourself")
        return

    user = UserRepository.get_user(target)
    if user is None:
        await ctx.reply(f"*Error:* There is no request from user '{target}'")
        return
    if not user.pending and user.blocked:
        await ctx.reply(f"User '{target}' is already blocked")
        return

    messages = []
    if not user.blocked:
        messages.append("User was added before.")
    if not user.pending:
        messages.append("User wasn't pending.")
    try:
        UserRepository.set_blocked(target)
        if ctx.block_removes_subscriptions:
            routes = SubscriptionRepository.delete_user(target)
            ctx.lifecycle.release_unused(routes)
            if routes:
                messages.append(f"Removed subscriptions for {', '.join(routes)}.")
    except PersistenceError as e:
        messages.append(f"Error while updating user {target}: {escape_fragment(e)}.")
    else:
        logger.info(f"Администратор {ctx.chat_id} заблокировал пользователя {target}")
        if user.pending:
            await ctx.notifier.send(target, "The join request was denied!")
        else:
            await ctx.notifier.send(target, "You have been blocked!")
        messages.append(f"Blocked user {target}.")
        await ctx.notifier.notify_admins(f"Blocked user {target}.", exclude=[ctx.chat_id])
    await ctx.reply('\n'.join(messages))


ADMIN_QUERIES: Dict[str, Callable[[CommandContext], Awaitable[None]]] = {
    'users': admin_users,
    'requests': admin_requests,
    'blocked': admin_blocked,
    'admins': admin_admins,
    'active': admin_active,
}

ADMIN_TRANSITIONS: Dict[str, Callable[[CommandContext, int], Awaitable[None]]] = {
    'add': add_user,
    'admin': add_admin,
    'block': block_user,
}


async def cmd_admin(ctx: CommandContext):
    """Команда admin <sub> [ids] - управление пользователями"""
    if not ctx.args:
        await ctx.reply(ADMIN_HELP_TEXT)
        return

    command = ctx.args[0]
    if command in ADMIN_QUERIES:
        await ADMIN_QUERIES[command](ctx)
        return

    transition = ADMIN_TRANSITIONS.get(command)
    if transition is None:
        await ctx.reply(f"Unknown admin command '{escape_fragment(command)}'.\n\n" + ADMIN_HELP_TEXT)
        return
    if len(ctx.args) < 2:
        await ctx.reply(f"Please specify a chat Id to use command {command}")
        return

    # Каждый id обрабатывается независимо
    for raw_id in ctx.args[1].split(','):
        raw_id = raw_id.strip()
        if not _CHAT_ID_RE.fullmatch(raw_id):
            await ctx.reply(f"Error: Chat Id '{escape_fragment(raw_id)}' is not a number")
            continue
        try:
            await transition(ctx, int(raw_id))
        except PersistenceError as e:
            logger.error(f"Ошибка при обработке пользователя {raw_id}: {e}")
            await ctx.reply(f"Error while updating user {raw_id}: {escape_fragment(e)}.")
