"""
Утилиты для работы с датами расписания
"""
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional

from database.models import ScheduleEntry, ScheduleSnapshot
from utils.errors import ScheduleParseError

# Источник расписаний знает только будние дни
WEEKDAYS: List[str] = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']

# Полный список для форматирования дат, не зависит от локали
WEEKDAY_NAMES: List[str] = WEEKDAYS + ['Saturday', 'Sunday']

TODAY = 'Today'
TOMORROW = 'Tomorrow'


def format_date_key(day: date) -> str:
    """Форматирование даты в ключ расписания, например "Friday 18.09." """
    return f"{WEEKDAY_NAMES[day.weekday()]} {day.strftime('%d.%m.')}"


def weekday_of(date_key: str) -> str:
    """День недели из ключа расписания"""
    return date_key.split(' ', 1)[0]


def advance_cursor(cursor: date, label: str) -> date:
    """Сдвиг календарного курсора по метке дня из источника.

    Для дня недели курсор сдвигается минимум на один день,
    то есть совпадающий день недели означает следующую неделю.
    """
    if label == TODAY:
        return cursor
    if label == TOMORROW:
        return cursor + timedelta(days=1)
    if label not in WEEKDAYS:
        raise ScheduleParseError(f"Неизвестная метка дня '{label}'")

    diff = WEEKDAYS.index(label) - cursor.weekday()
    if diff <= 0:
        diff += 7
    return cursor + timedelta(days=diff)


def normalize_schedule(entries: Iterable[Mapping[str, Any]],
                       now: Optional[datetime] = None) -> ScheduleSnapshot:
    """
    Преобразование строк расписания с метками "Today", "Tomorrow" и днями
    недели в абсолютные даты с суммированием мест по каждой дате.

    Строки должны идти в хронологическом порядке. Подряд идущие строки с
    одинаковой меткой относятся к одной дате (например, несколько рейсов).
    """
    observed_at = now or datetime.now()
    cursor = observed_at.date()
    schedule: ScheduleSnapshot = {}
    last_label = None

    for entry in entries:
        try:
            label = entry['day']
            seats = int(entry['seatsAvailable'])
        except (KeyError, TypeError, ValueError) as e:
            raise ScheduleParseError(f"Некорректная строка расписания {entry!r}: {e}") from e

        if label != last_label:
            cursor = advance_cursor(cursor, label)
        last_label = label

        key = format_date_key(cursor)
        if key in schedule:
            schedule[key].seats += seats
        else:
            schedule[key] = ScheduleEntry(seats=seats, observed_at=observed_at)

    return schedule
