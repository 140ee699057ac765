"""
Иерархия исключений сервиса
"""


class ShuttleError(Exception):
    """Базовое исключение сервиса"""


class TransientFetchError(ShuttleError):
    """Временная ошибка получения расписания (сеть, HTTP, разбор ответа).

    Попытка повторяется; после исчерпания попыток маршрут либо
    не активируется, либо остаётся с устаревшими данными.
    """


class ScheduleParseError(TransientFetchError):
    """Ответ источника расписаний имеет неожиданный формат"""


class SessionExpired(ShuttleError):
    """Сессия источника расписаний недействительна.

    Повтор не поможет, поэтому ошибка фатальна для всего процесса.
    """


class ValidationError(ShuttleError):
    """Некорректный ввод пользователя; текст уходит в ответ в чат"""


class PersistenceError(ShuttleError):
    """Ошибка при работе с базой данных"""
