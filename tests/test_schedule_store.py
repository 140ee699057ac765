from datetime import datetime, timedelta

from database.models import ScheduleEntry
from services.schedule_store import ScheduleStore

from conftest import NOW, snapshot

ROUTE = 'Work-Destination1'


def test_merge_keeps_dates_missing_from_update():
    store = ScheduleStore()
    store.seed(ROUTE, snapshot(Monday_14=0, Tuesday_15=2))

    store.merge(ROUTE, snapshot(Tuesday_15=5, Wednesday_16=1))

    current = store.snapshot(ROUTE)
    assert {key: entry.seats for key, entry in current.items()} == {
        'Monday 14.09.': 0,
        'Tuesday 15.09.': 5,
        'Wednesday 16.09.': 1,
    }


def test_seed_replaces_route():
    store = ScheduleStore()
    store.seed(ROUTE, snapshot(Monday_14=1))
    store.seed(ROUTE, snapshot(Tuesday_15=1))
    assert list(store.snapshot(ROUTE)) == ['Tuesday 15.09.']


def test_snapshot_is_a_copy():
    store = ScheduleStore()
    store.seed(ROUTE, snapshot(Monday_14=1))

    copy = store.snapshot(ROUTE)
    copy['Monday 14.09.'].seats = 10

    assert store.snapshot(ROUTE)['Monday 14.09.'].seats == 1


def test_evict_removes_old_observations():
    store = ScheduleStore()
    store.seed(ROUTE, {
        'Monday 14.09.': ScheduleEntry(seats=1, observed_at=NOW - timedelta(days=20)),
        'Tuesday 15.09.': ScheduleEntry(seats=1, observed_at=NOW),
    })
    store.seed('Destination1-Work', {
        'Monday 14.09.': ScheduleEntry(seats=0, observed_at=NOW - timedelta(days=15)),
    })

    removed = store.evict(timedelta(days=14), now=NOW)

    assert removed == 2
    assert list(store.snapshot(ROUTE)) == ['Tuesday 15.09.']
    assert store.snapshot('Destination1-Work') == {}


def test_available_seats_filters_weekdays():
    store = ScheduleStore()
    store.seed(ROUTE, snapshot(Monday_14=2, Tuesday_15=0, Thursday_17=3, Friday_18=1))

    assert store.available_seats(ROUTE, ['Monday', 'Tuesday', 'Thursday']) == [
        ('Monday 14.09.', 2),
        ('Thursday 17.09.', 3),
    ]


def test_remove_and_unknown_route():
    store = ScheduleStore()
    store.seed(ROUTE, snapshot(Monday_14=2))
    store.remove(ROUTE)

    assert store.snapshot(ROUTE) == {}
    assert store.available_seats(ROUTE, ['Monday']) == []


def test_lock_is_per_route():
    store = ScheduleStore()
    assert store.lock(ROUTE) is store.lock(ROUTE)
    assert store.lock(ROUTE) is not store.lock('Destination1-Work')


def test_evict_uses_current_time_by_default():
    store = ScheduleStore()
    store.seed(ROUTE, {'Monday 14.09.': ScheduleEntry(seats=1, observed_at=datetime.now())})
    assert store.evict(timedelta(days=14)) == 0
