"""
Поиск изменений между старым и новым расписанием маршрута
"""
from typing import List, Union

from database.models import NewDayEvent, ScheduleSnapshot, SeatsFreedEvent
from utils.time_utils import weekday_of

ScheduleEvent = Union[NewDayEvent, SeatsFreedEvent]


def detect_new_days(previous: ScheduleSnapshot, incoming: ScheduleSnapshot,
                    route: str) -> List[NewDayEvent]:
    """Даты, которые появились в новом расписании"""
    return [
        NewDayEvent(route=route, date=key, weekday=weekday_of(key))
        for key in incoming
        if key not in previous
    ]


def detect_freed_seats(previous: ScheduleSnapshot, incoming: ScheduleSnapshot,
                       route: str, initial: bool = False) -> List[SeatsFreedEvent]:
    """
    Даты, на которые освободились места.

    Событие возникает только при переходе с нуля на ненулевое значение;
    в режиме initial любая дата со свободными местами считается событием.
    """
    events = []
    for key, entry in incoming.items():
        if entry.seats == 0:
            continue
        old = previous.get(key)
        if initial or (old is not None and old.seats == 0):
            events.append(SeatsFreedEvent(
                route=route, date=key, weekday=weekday_of(key), seats=entry.seats
            ))
    return events


def detect_changes(previous: ScheduleSnapshot, incoming: ScheduleSnapshot,
                   route: str) -> List[ScheduleEvent]:
    """Все события обновления маршрута: новые дни и освободившиеся места"""
    return [
        *detect_new_days(previous, incoming, route),
        *detect_freed_seats(previous, incoming, route),
    ]
