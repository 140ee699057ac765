import pytest

from database.models import NewDayEvent, SeatsFreedEvent
from database.repository import SubscriptionRepository, UserRepository
from services.notifier import (MESSAGE_LIMIT, Notifier, escape_fragment, escape_markdown,
                               split_message)

from conftest import FakeBot

ROUTE = 'Destination1-Work'


def add_member(chat_id):
    UserRepository.get_or_create(chat_id, f'user{chat_id}')
    UserRepository.set_member(chat_id)


def test_escape_markdown():
    assert escape_markdown('Friday 18.09. (Work-Home)!') == r'Friday 18\.09\. \(Work\-Home\)\!'
    assert escape_markdown('*bold* _italic_') == '*bold* _italic_'
    assert escape_markdown('#1 {x} +~ a=b|c') == r'\#1 \{x\} \+\~ a\=b\|c'


def test_escape_fragment():
    assert escape_fragment('a_b*c\\d') == r'a\_b\*c\\d'
    assert escape_fragment(KeyError('john_doe')) == r"'john\_doe'"


def test_split_message_by_lines():
    line = 'x' * 1500
    parts = split_message('\n'.join([line] * 5))

    assert len(parts) == 3
    assert all(len(part) <= MESSAGE_LIMIT for part in parts)
    assert '\n'.join(parts) == '\n'.join([line] * 5)


def test_split_message_long_line():
    parts = split_message('y' * (MESSAGE_LIMIT + 10))
    assert [len(part) for part in parts] == [MESSAGE_LIMIT, 10]


@pytest.mark.asyncio
async def test_send_never_splits_escape_sequence(bot, notifier):
    await notifier.send(1, 'a' * (MESSAGE_LIMIT - 1) + '.' + 'b' * 10)

    assert bot.texts(1) == ['a' * (MESSAGE_LIMIT - 1), '\\.' + 'b' * 10]


@pytest.mark.asyncio
async def test_dispatch_groups_events_per_recipient(bot, notifier):
    add_member(1)
    add_member(2)
    SubscriptionRepository.subscribe(1, ROUTE, ['Monday', 'Tuesday'], True)
    SubscriptionRepository.subscribe(2, ROUTE, ['Monday', 'Tuesday'], False)

    recipients = await notifier.dispatch([
        NewDayEvent(route=ROUTE, date='Tuesday 15.09.', weekday='Tuesday'),
        SeatsFreedEvent(route=ROUTE, date='Monday 14.09.', weekday='Monday', seats=4),
    ])

    assert sorted(recipients) == [1, 2]
    assert len(recipients[1]) == 2
    assert len(recipients[2]) == 1
    assert len(bot.texts(1)) == 1
    assert bot.texts(2) == [r'*Destination1\-Work*' + '\nSeats are now available for Tuesday 15\\.09\\.']


@pytest.mark.asyncio
async def test_blocked_subscriber_gets_nothing(bot, notifier):
    add_member(1)
    SubscriptionRepository.subscribe(1, ROUTE, ['Monday'], True)
    UserRepository.set_blocked(1)

    recipients = await notifier.dispatch([
        SeatsFreedEvent(route=ROUTE, date='Monday 14.09.', weekday='Monday', seats=1),
    ])

    assert recipients == {}
    assert bot.sent == []


@pytest.mark.asyncio
async def test_delivery_failure_is_not_raised():
    add_member(1)
    add_member(2)
    bot = FakeBot(failing=[1])
    notifier = Notifier(bot)

    await notifier.notify_all('*Service has started!*')

    assert await notifier.send(1, 'hello') is False
    assert bot.texts(2) == ['*Service has started\\!*']


@pytest.mark.asyncio
async def test_notify_admins_excludes_sender(bot, notifier):
    for chat_id in (1, 2):
        add_member(chat_id)
        UserRepository.set_admin(chat_id)

    await notifier.notify_admins('Added user 3.', exclude=[1])

    assert bot.texts(1) == []
    assert bot.texts(2) == ['Added user 3\\.']
