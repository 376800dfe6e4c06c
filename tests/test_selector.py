from datetime import datetime, timedelta

from carecall.models import Device, device_key
from carecall.selector import select_volunteers, fetch_candidates, FRESHNESS

from tests.conftest import make_device

NOW = datetime(2024, 5, 1, 12, 0, 0)


def _dev(user_id, token="tok", lat=None, lon=None, seen_ago=timedelta(0)):
    return Device(
        id=device_key("volunteer", user_id),
        user_id=user_id,
        role="volunteer",
        push_token=token,
        is_available=True,
        latitude=lat,
        longitude=lon,
        last_seen_at=NOW - seen_ago,
    )


class TestFiltering:
    def test_drops_missing_push_token(self):
        out = select_volunteers(10.0, 20.0, [_dev(1, token=None), _dev(2, token=""), _dev(3)], now=NOW)
        assert [v.user_id for v in out] == [3]

    def test_drops_stale_devices(self):
        devices = [
            _dev(1, seen_ago=FRESHNESS + timedelta(seconds=1)),
            _dev(2, seen_ago=FRESHNESS),
            _dev(3, seen_ago=timedelta(minutes=1)),
        ]
        out = select_volunteers(10.0, 20.0, devices, now=NOW)
        assert [v.user_id for v in out] == [2, 3]

    def test_empty_snapshot(self):
        assert select_volunteers(10.0, 20.0, [], now=NOW) == []


class TestRanking:
    def test_sorted_by_distance_unknown_last(self):
        devices = [
            _dev(1),                        # no location
            _dev(2, lat=10.0, lon=21.0),    # ~110 km
            _dev(3),                        # no location
            _dev(4, lat=10.0, lon=20.0),    # 0 km
            _dev(5, lat=10.0, lon=20.5),    # ~55 km
        ]
        out = select_volunteers(10.0, 20.0, devices, now=NOW)
        assert [v.user_id for v in out] == [4, 5, 2, 1, 3]
        assert out[0].distance_km == 0
        assert out[-1].distance_km is None

    def test_ties_keep_snapshot_order(self):
        devices = [_dev(i, token=f"t{i}", lat=11.0, lon=20.0) for i in (7, 3, 9)]
        out = select_volunteers(10.0, 20.0, devices, now=NOW)
        assert [v.user_id for v in out] == [7, 3, 9]

    def test_non_finite_location_ranks_as_unknown(self):
        devices = [
            _dev(1, lat=15.0, lon=20.0),
            _dev(2, lat=float("nan"), lon=20.0),
            _dev(3, lat=10.0, lon=20.0),
            _dev(4, lat=10.0, lon=float("inf")),
        ]
        out = select_volunteers(10.0, 20.0, devices, now=NOW)
        assert [v.user_id for v in out] == [3, 1, 2, 4]
        assert [v.distance_km is None for v in out] == [False, False, True, True]

    def test_caps_at_ten(self):
        devices = [_dev(i, token=f"t{i}", lat=10.0 + i / 100, lon=20.0) for i in range(25, 0, -1)]
        out = select_volunteers(10.0, 20.0, devices, now=NOW)
        assert len(out) == 10
        assert [v.user_id for v in out] == list(range(1, 11))
        assert [v.push_token for v in out] == [f"t{i}" for i in range(1, 11)]


class TestFetchCandidates:
    def test_only_available_volunteers(self, db):
        make_device(db, 1)
        make_device(db, 2, available=False)
        make_device(db, 3, role="elderly")
        assert [d.user_id for d in fetch_candidates(db)] == [1]

    def test_bounded(self, db):
        for i in range(1, 8):
            make_device(db, i)
        assert len(fetch_candidates(db, limit=5)) == 5
