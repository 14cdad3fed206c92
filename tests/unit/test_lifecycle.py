"""Tests for expiry and community flagging."""

from datetime import date, timedelta

import pytest

from grant_tracker.store import MemoryGrantStore, SQLiteGrantStore, expire_grants, flag_grant


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        store = MemoryGrantStore()
    else:
        store = SQLiteGrantStore(str(tmp_path / "grants.db"))
    yield store
    store.close()


class TestExpireGrants:
    """Tests for expire_grants."""

    def test_expires_past_non_rolling(self, store, make_grant, today):
        store.upsert([
            make_grant("x_past", title="Past Fund", deadline=today - timedelta(days=2)),
            make_grant("x_rolling", deadline=today - timedelta(days=2), is_rolling=True),
            make_grant("x_open", deadline=today + timedelta(days=2)),
            make_grant("x_undated"),
        ])

        expired = expire_grants(store, today)

        assert [g.to_dict() for g in expired] == [
            {"id": "x_past", "title": "Past Fund", "deadline": (today - timedelta(days=2)).isoformat()},
        ]
        assert store.get_grant("x_past").is_active is False
        assert store.get_grant("x_rolling").is_active is True
        assert store.get_grant("x_undated").is_active is True

    def test_second_run_expires_nothing(self, store, make_grant, today):
        store.upsert([make_grant("x_past", deadline=today - timedelta(days=2))])
        expire_grants(store, today)
        assert expire_grants(store, today) == []

    def test_empty_store(self, store):
        assert expire_grants(store, date(2026, 3, 1)) == []


class TestFlagGrant:
    """Tests for flag_grant."""

    def test_deactivates_at_threshold(self, store, make_grant):
        store.upsert([make_grant("x_1")])

        first = flag_grant(store, "x_1", "org-1")
        second = flag_grant(store, "x_1", "org-2")
        third = flag_grant(store, "x_1", "org-3")

        assert (first.flag_count, first.deactivated) == (1, False)
        assert (second.flag_count, second.deactivated) == (2, False)
        assert third.to_dict() == {"flagged": True, "flagCount": 3, "deactivated": True}
        assert store.get_grant("x_1").is_active is False

    def test_same_org_counts_once(self, store, make_grant):
        store.upsert([make_grant("x_1")])

        for _ in range(5):
            result = flag_grant(store, "x_1", "org-1")

        assert result.flagged is False
        assert result.flag_count == 1
        assert store.get_grant("x_1").is_active is True

    def test_custom_threshold(self, store, make_grant):
        store.upsert([make_grant("x_1")])
        assert flag_grant(store, "x_1", "org-1", threshold=1).deactivated is True

    def test_reingest_reactivates_flagged_grant(self, store, make_grant):
        store.upsert([make_grant("x_1")])
        flag_grant(store, "x_1", "org-1", threshold=1)

        store.upsert([make_grant("x_1")])

        assert store.get_grant("x_1").is_active is True
