"""
Разбор маршрутов из команд пользователя и загрузка точек назначения
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from config import settings
from services.notifier import escape_fragment
from utils.errors import ValidationError


class RouteKind(Enum):
    """Направление, запрошенное пользователем"""
    BIDIRECTIONAL = 'bidirectional'
    TO_HUB = 'to_hub'
    FROM_HUB = 'from_hub'


@dataclass(frozen=True)
class RouteSpec:
    """Разобранный токен маршрута: "Dest", "Dest-" или "-Dest" """
    kind: RouteKind
    destination: str

    def routes(self, hub: str = settings.HUB) -> List[str]:
        """Направленные маршруты, соответствующие токену"""
        to_hub = f"{self.destination}-{hub}"
        from_hub = f"{hub}-{self.destination}"
        if self.kind is RouteKind.TO_HUB:
            return [to_hub]
        if self.kind is RouteKind.FROM_HUB:
            return [from_hub]
        return [to_hub, from_hub]


class Destinations:
    """Точки назначения с координатами; хаб "Work" обязателен"""

    def __init__(self, coordinates: Mapping[str, Mapping[str, float]], hub: str = settings.HUB):
        if hub not in coordinates:
            raise ValueError(f"Точка назначения '{hub}' должна быть определена")
        if len(coordinates) < 2:
            raise ValueError(f"Нужна хотя бы одна точка назначения помимо '{hub}'")
        self.hub = hub
        self._coordinates: Dict[str, Mapping[str, float]] = dict(coordinates)
        self._by_lower = {name.lower(): name for name in coordinates if name != hub}

    @classmethod
    def load(cls, path: str = settings.DESTINATIONS_PATH) -> 'Destinations':
        """Загрузка точек назначения из JSON-файла"""
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Ошибка чтения точек назначения из '{path}': {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Файл '{path}' должен содержать JSON-объект")
        return cls(data)

    @property
    def names(self) -> List[str]:
        """Точки назначения, кроме хаба"""
        return list(self._by_lower.values())

    def lookup(self, name: str) -> Optional[str]:
        """Каноническое имя точки назначения без учёта регистра"""
        return self._by_lower.get(name.strip().lower())

    def coordinates(self, name: str) -> Mapping[str, float]:
        """Координаты точки (включая хаб)"""
        return self._coordinates[name]

    def split_route(self, route: str) -> Tuple[str, str]:
        """Разделение маршрута на пункт отправления и назначения"""
        origin, _, destination = route.partition('-')
        if origin not in self._coordinates or destination not in self._coordinates:
            raise ValidationError(f"Unknown route '{escape_fragment(route)}'")
        return origin, destination


def parse_route_token(token: str, destinations: Destinations) -> RouteSpec:
    """Разбор одного токена маршрута.

    "Dest" - оба направления, "Dest-" - в сторону хаба, "-Dest" - от хаба.
    """
    parts = token.split('-')
    if len(parts) == 1:
        kind, name = RouteKind.BIDIRECTIONAL, parts[0]
    elif len(parts) == 2 and parts[0] and not parts[1]:
        kind, name = RouteKind.TO_HUB, parts[0]
    elif len(parts) == 2 and parts[1] and not parts[0]:
        kind, name = RouteKind.FROM_HUB, parts[1]
    else:
        raise ValidationError(f"*Error:* Couldn't find route '{escape_fragment(token)}'")

    destination = destinations.lookup(name)
    if destination is None:
        raise ValidationError(f"*Error:* Couldn't find route '{escape_fragment(token)}'")
    return RouteSpec(kind=kind, destination=destination)


def resolve_routes(request: str, destinations: Destinations) -> List[str]:
    """Список направленных маршрутов из строки вида "Dest1,Dest2-,-Dest3"

    Неизвестный токен - ошибка для всей строки.
    """
    routes: List[str] = []
    for token in request.split(','):
        if not token.strip():
            continue
        spec = parse_route_token(token.strip(), destinations)
        routes.extend(spec.routes(destinations.hub))

    if not routes:
        raise ValidationError(f"*Error:* Couldn't find route '{escape_fragment(request)}'")
    return list(dict.fromkeys(routes))
