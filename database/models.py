"""
Модели данных
"""
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Dict


class AccessLevel(IntEnum):
    """Уровень доступа пользователя, упорядочен по возрастанию прав"""
    BLOCKED = 0
    PENDING = 1
    MEMBER = 2
    ADMIN = 3


@dataclass
class User:
    """Модель пользователя"""
    chat_id: int
    name: str
    admin: bool = False
    blocked: bool = True
    pending: bool = True
    request_sent: bool = False

    @property
    def access_level(self) -> AccessLevel:
        """Уровень доступа, вычисляемый из флагов"""
        if self.pending:
            return AccessLevel.PENDING
        if self.blocked:
            return AccessLevel.BLOCKED
        if self.admin:
            return AccessLevel.ADMIN
        return AccessLevel.MEMBER


@dataclass
class UserCounts:
    """Сводка по пользователям для admin users"""
    users: int = 0
    pending: int = 0
    blocked: int = 0
    request_sent: int = 0
    admins: int = 0


@dataclass
class Subscription:
    """Модель подписки на маршрут в конкретный день недели"""
    chat_id: int
    route: str
    day: str
    seats: bool = True


@dataclass
class ScheduleEntry:
    """Количество мест на дату и время наблюдения"""
    seats: int
    observed_at: datetime


# Ключ - дата вида "Friday 18.09."
ScheduleSnapshot = Dict[str, ScheduleEntry]


@dataclass(frozen=True)
class NewDayEvent:
    """В расписании появился новый день"""
    route: str
    date: str
    weekday: str

    seats_only = False

    def describe(self) -> str:
        return f"*{self.route}*\nSeats are now available for {self.date}"


@dataclass(frozen=True)
class SeatsFreedEvent:
    """На ранее заполненный день освободились места"""
    route: str
    date: str
    weekday: str
    seats: int

    seats_only = True

    def describe(self) -> str:
        return f"*{self.route}*\n*{self.seats}* free seats on {self.date}"
