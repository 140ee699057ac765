import asyncio

import pytest

from bot import shutdown
from config import settings
from database.repository import UserRepository
from services.runtime import Runtime
from utils.errors import SessionExpired

SESSION_TEXT = "It seems like the session has expired, please log in on https://m.uber.com/"


class FakeClient:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


def plain(text):
    return text.replace('\\', '')


def add_member(chat_id):
    UserRepository.get_or_create(chat_id, f'user{chat_id}')
    UserRepository.set_member(chat_id)


def test_stop_without_cause():
    runtime = Runtime()
    runtime.stop()

    assert runtime.stopping
    assert runtime.cause is None
    assert runtime.exit_code == 0


def test_session_expired_replaces_earlier_cause():
    runtime = Runtime()
    expired = SessionExpired(SESSION_TEXT)

    runtime.fail(RuntimeError('boom'))
    runtime.fail(expired)

    assert runtime.session_expired
    assert runtime.cause is expired
    assert runtime.exit_code == 1


def test_later_errors_keep_session_expired():
    runtime = Runtime()
    expired = SessionExpired(SESSION_TEXT)

    runtime.fail(expired)
    runtime.fail(RuntimeError('boom'))
    runtime.fail(SessionExpired('again'))

    assert runtime.cause is expired


def test_first_crash_is_kept():
    runtime = Runtime()
    first = RuntimeError('first')

    runtime.fail(first)
    runtime.fail(ValueError('second'))

    assert runtime.cause is first
    assert not runtime.session_expired


@pytest.mark.asyncio
async def test_wait_returns_after_failure():
    runtime = Runtime()
    waiter = asyncio.create_task(runtime.wait())

    runtime.fail(RuntimeError('boom'))

    await asyncio.wait_for(waiter, timeout=1)


@pytest.mark.asyncio
@pytest.mark.parametrize('causes, expected', [
    ([], ['*Service has been shut down!*']),
    ([RuntimeError('boom')], ['*Service has crashed!*']),
    ([RuntimeError('boom'), SessionExpired(SESSION_TEXT)], [
        'Lost authorization for the uber session',
        SESSION_TEXT,
        '*Service has been shut down!*',
    ]),
])
async def test_shutdown_announcement(bot, notifier, lifecycle, causes, expected):
    add_member(1)
    UserRepository.get_or_create(2, 'pending')
    runtime = Runtime()
    for cause in causes:
        runtime.fail(cause)
    client = FakeClient()

    await shutdown(bot, client, lifecycle, notifier, runtime, None, None)

    assert [plain(text) for text in bot.texts(1)] == expected
    assert bot.texts(2) == []
    assert runtime.stopping
    assert client.closed
    assert bot.session.closed


@pytest.mark.asyncio
async def test_shutdown_deletes_webhook_when_configured(bot, notifier, lifecycle, monkeypatch):
    monkeypatch.setattr(settings, 'DELETE_WEBHOOK', True)

    await shutdown(bot, FakeClient(), lifecycle, notifier, Runtime(), None, None)

    assert bot.webhook_deleted
