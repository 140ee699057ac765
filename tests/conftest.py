import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Корень проекта в sys.path, чтобы работали импорты config, database.* и т.д.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Settings читается при импорте config, поэтому окружение задаётся заранее
os.environ.setdefault('BOT_TOKEN', '123456:TEST')
os.environ.setdefault('ADMIN_IDS', '')
os.environ.setdefault('FETCH_RETRY_DELAY', '0')

pytest_plugins = ("pytest_asyncio",)

from aiogram.exceptions import TelegramAPIError  # noqa: E402

from config import settings  # noqa: E402
from database.database import init_db  # noqa: E402
from database.models import ScheduleEntry  # noqa: E402
from services.notifier import Notifier  # noqa: E402
from services.runtime import Runtime  # noqa: E402
from services.schedule_store import ScheduleStore  # noqa: E402
from utils.errors import TransientFetchError  # noqa: E402
from utils.route_parser import Destinations  # noqa: E402
from utils.scheduler import RouteLifecycleManager  # noqa: E402

NOW = datetime(2020, 9, 14, 8, 0)


class FakeSession:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakeBot:
    """Вместо Telegram: запоминает отправленные сообщения"""

    def __init__(self, failing=()):
        self.sent = []
        self.failing = set(failing)
        self.session = FakeSession()
        self.webhook_deleted = False

    async def delete_webhook(self, drop_pending_updates=None):
        self.webhook_deleted = True

    async def send_message(self, chat_id, text, parse_mode=None):
        if chat_id in self.failing:
            raise TelegramAPIError(method=None, message="Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text))

    def texts(self, chat_id):
        return [text for cid, text in self.sent if cid == chat_id]


class FakeScheduler:
    """Минимальная замена AsyncIOScheduler"""

    def __init__(self):
        self.jobs = {}
        self.running = False
        self.paused = False

    def add_job(self, func, trigger=None, args=None, id=None, **kwargs):
        self.jobs[id] = {'func': func, 'trigger': trigger, 'args': args or [], **kwargs}
        return self.jobs[id]

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def remove_job(self, job_id):
        del self.jobs[job_id]

    def start(self):
        self.running = True

    def pause(self):
        self.paused = True

    def shutdown(self, wait=True):
        self.running = False


class FakePoller:
    """Выдаёт заранее заданные расписания или исключения по маршруту"""

    def __init__(self, results=None):
        self.results = {route: list(items) for route, items in (results or {}).items()}
        self.calls = []

    def push(self, route, result):
        self.results.setdefault(route, []).append(result)

    async def fetch(self, route):
        self.calls.append(route)
        queue = self.results.get(route)
        if not queue:
            raise TransientFetchError(f"no data for {route}")
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, BaseException):
            raise result
        return result


def snapshot(**seats):
    """Расписание из пар день=места, например snapshot(Monday_14=0)"""
    return {
        key.replace('_', ' ') + '.09.': ScheduleEntry(seats=value, observed_at=NOW)
        for key, value in seats.items()
    }


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    """Отдельная БД SQLite для каждого теста"""
    monkeypatch.setattr(settings, 'DB_PATH', str(tmp_path / 'test.db'))
    monkeypatch.setattr(settings, 'ADMIN_IDS', [])
    init_db()
    return settings.DB_PATH


@pytest.fixture
def destinations():
    return Destinations({
        'Work': {'latitude': 47.36, 'longitude': 8.52},
        'Destination1': {'latitude': 47.41, 'longitude': 8.54},
        'Destination2': {'latitude': 47.39, 'longitude': 8.48},
    })


@pytest.fixture
def bot():
    return FakeBot()


@pytest.fixture
def notifier(bot):
    return Notifier(bot)


@pytest.fixture
def store():
    return ScheduleStore()


@pytest.fixture
def runtime():
    return Runtime()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def poller():
    return FakePoller()


@pytest.fixture
def lifecycle(poller, store, notifier, runtime, scheduler):
    return RouteLifecycleManager(poller, store, notifier, runtime, scheduler=scheduler,
                                 refresh_minutes=5, retention_days=14, cleanup_hours=24)
