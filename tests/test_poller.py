import json
from datetime import datetime

import pytest

from services.poller import RoutePoller
from services.shuttle_client import ShuttleClient, parse_schedules
from utils.errors import ScheduleParseError, SessionExpired, TransientFetchError, ValidationError

NOW = datetime(2020, 9, 16, 7, 30)


class FakeClient:
    """Клиент источника расписаний с заранее заданными ответами"""

    def __init__(self, destinations, responses):
        self.destinations = destinations
        self.responses = list(responses)
        self.calls = []

    async def fetch_schedules(self, origin, destination):
        self.calls.append((origin, destination))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def make_poller(client, attempts=3):
    return RoutePoller(client, attempts=attempts, retry_delay=0, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_fetch_normalizes_schedule(destinations):
    client = FakeClient(destinations, [[{'day': 'Today', 'seatsAvailable': 2}]])

    schedule = await make_poller(client).fetch('Destination1-Work')

    assert client.calls == [('Destination1', 'Work')]
    assert schedule['Wednesday 16.09.'].seats == 2


@pytest.mark.asyncio
async def test_transient_errors_are_retried(destinations):
    client = FakeClient(destinations, [
        TransientFetchError('timeout'),
        ScheduleParseError('bad json'),
        [{'day': 'Tomorrow', 'seatsAvailable': 1}],
    ])

    schedule = await make_poller(client).fetch('Work-Destination2')

    assert len(client.calls) == 3
    assert list(schedule) == ['Thursday 17.09.']


@pytest.mark.asyncio
async def test_unknown_label_spends_an_attempt(destinations):
    client = FakeClient(destinations, [
        [{'day': 'Someday', 'seatsAvailable': 1}],
        [{'day': 'Today', 'seatsAvailable': 1}],
    ])

    schedule = await make_poller(client).fetch('Work-Destination2')

    assert len(client.calls) == 2
    assert list(schedule) == ['Wednesday 16.09.']


@pytest.mark.asyncio
async def test_exhaustion_raises_transient_error(destinations):
    client = FakeClient(destinations, [TransientFetchError('down')] * 3)

    with pytest.raises(TransientFetchError, match="after 3 attempts"):
        await make_poller(client).fetch('Destination1-Work')
    assert len(client.calls) == 3


@pytest.mark.asyncio
async def test_session_expired_is_not_retried(destinations):
    client = FakeClient(destinations, [SessionExpired('expired'), []])

    with pytest.raises(SessionExpired):
        await make_poller(client).fetch('Destination1-Work')
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_unknown_route(destinations):
    client = FakeClient(destinations, [])
    with pytest.raises(ValidationError):
        await make_poller(client).fetch('Nowhere-Work')


def test_parse_schedules():
    body = json.dumps({'data': {'hcvSchedules': {'schedules': [
        {'day': 'Today', 'seatsAvailable': 1},
    ]}}})
    assert parse_schedules(body) == [{'day': 'Today', 'seatsAvailable': 1}]


def test_parse_unauthorized():
    body = json.dumps({'data': None, 'errors': [{'message': 'unauthorized'}]})
    with pytest.raises(SessionExpired, match="session has expired"):
        parse_schedules(body)


@pytest.mark.parametrize('body', [
    'not json',
    json.dumps([]),
    json.dumps({'errors': [{'message': 'internal'}]}),
    json.dumps({'data': {'hcvSchedules': None}}),
])
def test_parse_errors(body):
    with pytest.raises(ScheduleParseError):
        parse_schedules(body)


def test_build_payload(destinations):
    client = ShuttleClient(destinations, cookies='sid=1')
    payload = client.build_payload('Work', 'Destination1')

    assert payload['operationName'] == 'HcvSchedules'
    assert payload['variables']['pickup'] == {'latitude': 47.36, 'longitude': 8.52}
    assert payload['variables']['dropoff'] == {'latitude': 47.41, 'longitude': 8.54}
    assert client._headers['Cookie'] == 'sid=1'


@pytest.mark.asyncio
async def test_confirm_access_reports_missing_session(destinations, monkeypatch):
    client = ShuttleClient(destinations)

    async def fetch(origin, destination):
        return json.dumps({'errors': [{'message': 'unauthorized'}]})

    monkeypatch.setattr(client, 'fetch', fetch)

    with pytest.raises(SessionExpired, match="no active session"):
        await client.confirm_access()
