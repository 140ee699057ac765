"""
Модуль для работы с базой данных SQLite
"""
import sqlite3
import os
import logging
from contextlib import contextmanager
from typing import Generator

from config import settings
from utils.errors import PersistenceError

logger = logging.getLogger(__name__)


def get_connection() -> sqlite3.Connection:
    """Получение подключения к БД"""
    conn = sqlite3.connect(settings.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Контекстный менеджер для работы с БД.

    Ошибки sqlite3 преобразуются в PersistenceError.
    """
    try:
        conn = get_connection()
    except sqlite3.Error as e:
        raise PersistenceError(f"Не удалось открыть базу данных: {e}") from e
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Ошибка базы данных: {e}")
        raise PersistenceError(str(e)) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Инициализация базы данных"""
    # Создание директории для БД, если не существует
    db_dir = os.path.dirname(settings.DB_PATH)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    with get_db() as conn:
        cursor = conn.cursor()

        # Таблица пользователей
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                chat_id INTEGER PRIMARY KEY,
                name TEXT,
                admin INTEGER DEFAULT 0,
                blocked INTEGER DEFAULT 1,
                pending INTEGER DEFAULT 1,
                request_sent INTEGER DEFAULT 0
            )
        """)

        # Таблица подписок: одна строка на день недели
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS routes (
                chat_id INTEGER NOT NULL,
                route TEXT NOT NULL,
                day TEXT NOT NULL,
                seats INTEGER DEFAULT 1
            )
        """)

        # Индексы для быстрого поиска
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_routes_route
            ON routes(route, day)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_routes_user
            ON routes(chat_id, route)
        """)

        # Администраторы из конфигурации
        for admin_id in settings.ADMIN_IDS:
            cursor.execute("""
                INSERT INTO users (chat_id, name, admin, blocked, pending)
                VALUES (?, '', 1, 0, 0)
                ON CONFLICT(chat_id) DO UPDATE SET
                    admin = 1, blocked = 0, pending = 0
            """, (admin_id,))
        if settings.ADMIN_IDS:
            logger.info(f"Администраторы из конфигурации: {settings.ADMIN_IDS}")
