"""
Обработчики команд пользователей
"""
import logging
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from database.repository import SubscriptionRepository, UserRepository
from handlers.context import CommandContext
from services.notifier import escape_fragment
from utils.errors import PersistenceError, ValidationError
from utils.route_parser import resolve_routes
from utils.time_utils import WEEKDAYS

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Welcome! To use the *Uber Shuttle Notification* service, "
    "you need to be added first. Send a message with _join_ to "
    "notify admins.\nDisclaimer: Admins will be able to see your "
    "user name and user Id."
)

HELP_TEXT = (
    "These are the command options (parameters are marked with _$_ and are explained below):\n\n"
    "*add* (add subscription for a specific route, day, notification style)\n\n"
    "_message style_: add $routes [days=$days] [seats=$seats]\n\n"
    "_message example_: add Destination1,Destination2- days=Monday,Thursday seats=true\n\n"
    "*stop* (stop a subscription for a specific route or 'all')\n\n"
    "_message style_: stop $routes|all\n"
    "_message example_: stop all\n\n"
    "*info* (see all you subscriptions and their configurations)\n\n"
    "_message_: info\n\n"
    "*status* (see all active subscriptions for all users)\n\n"
    "_message_: status\n\n\n"
    "Parameters:\n\n"
    "*$routes*: Comma separated list of destinations or itineraries. To add only one direction, "
    "use dashes: <_Dest_>*-* for the route *to* Work and *-*<_Dest_> for the route *from* Work.\n"
    "e.g. _Destination1,Destination2,Destination3_ *or* _-Destination1,Destination2-_\n\n"
    "*$days* _(optional)_: Comma separated list of weekdays, preceeded with 'days='\n"
    "e.g. _days=Tuesday,Wednesday,Friday_\n\n"
    "*$seats* _(optional)_: _seats=true_ or _seats=false_.\n"
    "If _false_, only get notified if a day is added. If _true_, also get notified if new seats get free."
)


def parse_add_options(params: Sequence[str]) -> Tuple[List[str], bool]:
    """Разбор параметров days= и seats= команды add"""
    days = list(WEEKDAYS)
    seats = True

    for param in params:
        if param.startswith('days='):
            requested = [day.strip().capitalize() for day in param[5:].split(',') if day.strip()]
            if not requested:
                raise ValidationError("*Error:* Please specify at least one day")
            for day in requested:
                if day not in WEEKDAYS:
                    raise ValidationError(f"*Error:* Unknown day parameter {escape_fragment(day)}")
            days = list(dict.fromkeys(requested))
        elif param.startswith('seats='):
            value = param[6:]
            if value not in ('true', 'false'):
                raise ValidationError(f"*Error:* Unknown seats parameter {escape_fragment(value)}")
            seats = value == 'true'
        else:
            raise ValidationError(f"*Error:* Unknown parameter {escape_fragment(param)}")

    return days, seats


async def cmd_join(ctx: CommandContext):
    """Команда join - запрос на вступление"""
    if not ctx.user.pending:
        return

    UserRepository.mark_request_sent(ctx.chat_id)
    await ctx.notifier.notify_admins(
        f"New user {ctx.chat_id} ({escape_fragment(ctx.name)}) requests to join the user group.\n\n"
        f"To add, send:\n_admin add {ctx.chat_id}_\n"
        f"To make admin, send:\n_admin admin {ctx.chat_id}_\n"
        f"To block, send:\n_admin block {ctx.chat_id}_"
    )
    await ctx.reply("Admins have been notified")
    logger.info(f"Запрос на вступление от {ctx.chat_id}")


async def cmd_add(ctx: CommandContext):
    """Команда add <routes> [days=...] [seats=...] - подписка на маршруты"""
    if not ctx.args:
        await ctx.reply("Please enter a route parameter. Type _help_ to see the instructions.")
        return

    routes = resolve_routes(ctx.args[0], ctx.destinations)
    days, seats = parse_add_options(ctx.args[1:])

    messages = []
    subscribed = []
    for route in routes:
        # Маршрут, который не удалось активировать, не подписывается
        if not await ctx.lifecycle.activate(route, chat_id=ctx.chat_id):
            continue
        try:
            existed = SubscriptionRepository.subscribe(ctx.chat_id, route, days, seats)
        except PersistenceError:
            ctx.lifecycle.release_unused([route])
            raise
        messages.append(f"Updated route {route}" if existed else f"Subscribed to route {route}")
        subscribed.append(route)
        logger.info(f"Пользователь {ctx.chat_id} подписан на {route}: {days}, seats={seats}")

    # Места, которые уже свободны на выбранные дни
    already_available = []
    if seats:
        for route in subscribed:
            for date_key, count in ctx.store.available_seats(route, days):
                already_available.append(
                    f"*{route}*\n{count} Seats are already available for {date_key}"
                )
    if already_available:
        messages.append('')
        messages.extend(already_available)

    if messages:
        await ctx.reply('\n'.join(messages))


async def cmd_stop(ctx: CommandContext):
    """Команда stop <routes|all> - отписка от маршрутов"""
    if not ctx.args:
        await ctx.reply("Please enter a route parameter or 'all'. Type _help_ to see the instructions.")
        return

    if ctx.args[0] == 'all':
        routes = SubscriptionRepository.get_user_routes(ctx.chat_id)
        if not routes:
            await ctx.reply("There are no current subscriptions")
            return
    else:
        routes = resolve_routes(ctx.args[0], ctx.destinations)

    messages = []
    for route in routes:
        if SubscriptionRepository.unsubscribe(ctx.chat_id, route):
            messages.append(f"*{route}*: Unsubscribed from route {route}")
        else:
            messages.append(f"*{route}*: No subscription for route {route}")

    await ctx.reply('\n'.join(messages))
    ctx.lifecycle.release_unused(routes)


async def cmd_stopall(ctx: CommandContext):
    """Команда stopall - то же, что stop all"""
    await cmd_stop(replace(ctx, args=['all']))


async def cmd_info(ctx: CommandContext):
    """Команда info - подписки пользователя"""
    routes: Dict[str, Dict] = {}
    for sub in SubscriptionRepository.get_user_subscriptions(ctx.chat_id):
        entry = routes.setdefault(sub.route, {'days': [], 'seats': sub.seats})
        entry['days'].append(sub.day)

    if not routes:
        await ctx.reply("You have no notification subscriptions")
        return

    lines = [
        f"*{route}*\ndays: [{', '.join(entry['days'])}], "
        f"notify for free seats: {'True' if entry['seats'] else 'False'}"
        for route, entry in routes.items()
    ]
    await ctx.reply("These are your notification subscriptions:\n\n" + '\n'.join(lines))


async def cmd_status(ctx: CommandContext):
    """Команда status - количество подписчиков по маршрутам"""
    counts = SubscriptionRepository.get_route_counts()
    if not counts:
        await ctx.reply("There are no notification subscriptions at the moment")
        return

    lines = [f"*{route}:* {subs} subscriptions" for route, subs in counts]
    await ctx.reply("These are all the notification subscriptions per route:\n\n" + '\n'.join(lines))


async def cmd_help(ctx: CommandContext):
    """Команда help"""
    await ctx.reply(HELP_TEXT)


async def cmd_unknown(ctx: CommandContext):
    """Неизвестная команда"""
    await ctx.reply(f"Unknown command '{escape_fragment(ctx.command)}', type _help_ to see the instructions")
