"""
Репозиторий для работы с данными
"""
from typing import Iterable, List, Optional, Tuple

from database.database import get_db
from database.models import User, UserCounts, Subscription


class UserRepository:
    """Репозиторий для работы с пользователями"""

    @staticmethod
    def get_user(chat_id: int) -> Optional[User]:
        """Получение пользователя по chat_id"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM users WHERE chat_id = ?", (chat_id,))
            row = cursor.fetchone()
            return UserRepository._row_to_user(row) if row else None

    @staticmethod
    def get_or_create(chat_id: int, name: str) -> Tuple[User, bool]:
        """Получение пользователя или создание нового (заблокированного и ожидающего).

        Возвращает пару (пользователь, создан ли он сейчас).
        """
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM users WHERE chat_id = ?", (chat_id,))
            row = cursor.fetchone()
            if row:
                return UserRepository._row_to_user(row), False

            cursor.execute("""
                INSERT INTO users (chat_id, name, admin, blocked, pending, request_sent)
                VALUES (?, ?, 0, 1, 1, 0)
            """, (chat_id, name))
            return User(chat_id=chat_id, name=name), True

    @staticmethod
    def mark_request_sent(chat_id: int):
        """Отметка о том, что пользователь отправил запрос на вступление"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE users SET request_sent = 1 WHERE chat_id = ?", (chat_id,)
            )

    @staticmethod
    def set_member(chat_id: int):
        """Добавление пользователя в группу"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE users SET blocked = 0, pending = 0, request_sent = 0
                WHERE chat_id = ?
            """, (chat_id,))

    @staticmethod
    def set_admin(chat_id: int):
        """Назначение пользователя администратором"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE users SET blocked = 0, pending = 0, admin = 1, request_sent = 0
                WHERE chat_id = ?
            """, (chat_id,))

    @staticmethod
    def set_blocked(chat_id: int):
        """Блокировка пользователя"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE users SET blocked = 1, pending = 0, admin = 0, request_sent = 0
                WHERE chat_id = ?
            """, (chat_id,))

    @staticmethod
    def get_admin_ids(exclude: Iterable[int] = ()) -> List[int]:
        """Получение chat_id всех администраторов, кроме указанных"""
        with get_db() as conn:
            cursor = conn.cursor()
            query = "SELECT chat_id FROM users WHERE admin = 1"
            params = list(exclude)

            if params:
                placeholders = ", ".join("?" for _ in params)
                query += f" AND chat_id NOT IN ({placeholders})"

            cursor.execute(query, params)
            return [row['chat_id'] for row in cursor.fetchall()]

    @staticmethod
    def get_active_ids() -> List[int]:
        """Получение chat_id всех незаблокированных пользователей"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT DISTINCT chat_id FROM users WHERE blocked = 0")
            return [row['chat_id'] for row in cursor.fetchall()]

    @staticmethod
    def get_counts() -> UserCounts:
        """Сводка по пользователям"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT COUNT(chat_id) AS users,
                       COALESCE(SUM(pending), 0) AS pending,
                       COALESCE(SUM(blocked), 0) AS blocked,
                       COALESCE(SUM(request_sent), 0) AS request_sent,
                       COALESCE(SUM(admin), 0) AS admins
                FROM users
            """)
            row = cursor.fetchone()
            return UserCounts(
                users=row['users'],
                pending=row['pending'],
                blocked=row['blocked'],
                request_sent=row['request_sent'],
                admins=row['admins']
            )

    @staticmethod
    def get_requests() -> List[User]:
        """Пользователи, отправившие запрос на вступление"""
        return UserRepository._select_where("request_sent = 1")

    @staticmethod
    def get_blocked() -> List[User]:
        """Заблокированные администраторами пользователи"""
        return UserRepository._select_where("blocked = 1 AND pending = 0")

    @staticmethod
    def get_admins() -> List[User]:
        """Администраторы"""
        return UserRepository._select_where("admin = 1")

    @staticmethod
    def get_active() -> List[User]:
        """Незаблокированные пользователи"""
        return UserRepository._select_where("blocked = 0")

    @staticmethod
    def _select_where(condition: str) -> List[User]:
        """Выборка пользователей по фиксированному условию"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT * FROM users WHERE {condition} ORDER BY chat_id")
            return [UserRepository._row_to_user(row) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_user(row) -> User:
        """Преобразование строки БД в объект User"""
        return User(
            chat_id=row['chat_id'],
            name=row['name'] or '',
            admin=bool(row['admin']),
            blocked=bool(row['blocked']),
            pending=bool(row['pending']),
            request_sent=bool(row['request_sent'])
        )


class SubscriptionRepository:
    """Репозиторий для работы с подписками на маршруты"""

    @staticmethod
    def subscribe(chat_id: int, route: str, days: Iterable[str], seats: bool) -> bool:
        """Подписка на маршрут с заменой всех прежних дней.

        Возвращает True, если подписка на маршрут уже существовала.
        """
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT COUNT(*) AS count FROM routes
                WHERE chat_id = ? AND route = ?
            """, (chat_id, route))
            existed = cursor.fetchone()['count'] > 0

            cursor.execute(
                "DELETE FROM routes WHERE chat_id = ? AND route = ?", (chat_id, route)
            )
            cursor.executemany("""
                INSERT INTO routes (chat_id, route, day, seats)
                VALUES (?, ?, ?, ?)
            """, [(chat_id, route, day, int(seats)) for day in dict.fromkeys(days)])
            return existed

    @staticmethod
    def unsubscribe(chat_id: int, route: str) -> bool:
        """Отписка от маршрута. Возвращает False, если подписки не было"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM routes WHERE chat_id = ? AND route = ?", (chat_id, route)
            )
            return cursor.rowcount > 0

    @staticmethod
    def delete_user(chat_id: int) -> List[str]:
        """Удаление всех подписок пользователя. Возвращает затронутые маршруты"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT DISTINCT route FROM routes WHERE chat_id = ? ORDER BY route",
                (chat_id,)
            )
            routes = [row['route'] for row in cursor.fetchall()]
            cursor.execute("DELETE FROM routes WHERE chat_id = ?", (chat_id,))
            return routes

    @staticmethod
    def get_user_routes(chat_id: int) -> List[str]:
        """Маршруты, на которые подписан пользователь"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT DISTINCT route FROM routes WHERE chat_id = ? ORDER BY route",
                (chat_id,)
            )
            return [row['route'] for row in cursor.fetchall()]

    @staticmethod
    def get_user_subscriptions(chat_id: int) -> List[Subscription]:
        """Все строки подписок пользователя"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM routes WHERE chat_id = ?
                ORDER BY route, rowid
            """, (chat_id,))
            return [SubscriptionRepository._row_to_subscription(row) for row in cursor.fetchall()]

    @staticmethod
    def get_subscribers(route: str, weekday: str, seats_only: bool = False) -> List[int]:
        """Получатели уведомлений по маршруту и дню недели.

        Заблокированные пользователи не получают уведомлений.
        """
        with get_db() as conn:
            cursor = conn.cursor()
            query = """
                SELECT DISTINCT r.chat_id FROM routes r
                JOIN users u ON u.chat_id = r.chat_id
                WHERE r.route = ? AND r.day = ? AND u.blocked = 0
            """
            params = [route, weekday]

            if seats_only:
                query += " AND r.seats = 1"

            cursor.execute(query + " ORDER BY r.chat_id", params)
            return [row['chat_id'] for row in cursor.fetchall()]

    @staticmethod
    def get_route_counts() -> List[Tuple[str, int]]:
        """Количество уникальных подписчиков по каждому маршруту"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT route, COUNT(DISTINCT chat_id) AS subs FROM routes
                GROUP BY route ORDER BY route
            """)
            return [(row['route'], row['subs']) for row in cursor.fetchall()]

    @staticmethod
    def get_active_routes() -> List[str]:
        """Маршруты, у которых есть хотя бы один подписчик"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT DISTINCT route FROM routes ORDER BY route")
            return [row['route'] for row in cursor.fetchall()]

    @staticmethod
    def _row_to_subscription(row) -> Subscription:
        """Преобразование строки БД в объект Subscription"""
        return Subscription(
            chat_id=row['chat_id'],
            route=row['route'],
            day=row['day'],
            seats=bool(row['seats'])
        )
