"""Tests for DataStore."""

import json

import pytest

from storefront.data_store import DataStore
from storefront.errors import UniqueConstraintError


@pytest.fixture
def store(temp_dir):
    return DataStore(temp_dir / "data")


class TestInsertAndSelect:
    def test_insert_fills_id_and_created_at(self, store):
        row = store.insert("things", {"name": "a"})
        assert row["id"]
        assert row["created_at"].endswith("Z")
        assert store.get("things", row["id"])["name"] == "a"

    def test_missing_table_is_empty(self, store):
        assert store.select("nothing") == []
        assert store.get("nothing", "x") is None

    def test_unique_column(self, store):
        store.insert("orders", {"order_no": "ORD-1"}, unique=("order_no",))
        with pytest.raises(UniqueConstraintError) as exc_info:
            store.insert("orders", {"order_no": "ORD-1"}, unique=("order_no",))
        assert exc_info.value.column == "order_no"
        assert len(store.select("orders")) == 1

    def test_select_filters_order_and_limit(self, store):
        store.insert("things", {"kind": "a", "rank": "2"})
        store.insert("things", {"kind": "b", "rank": "1"})
        store.insert("things", {"kind": "a", "rank": "3"})

        rows = store.select("things", {"kind": "a"}, order_by="rank", descending=True)
        assert [r["rank"] for r in rows] == ["3", "2"]

        rows = store.select("things", where=lambda r: r["rank"] < "3", order_by="rank", limit=1)
        assert [r["rank"] for r in rows] == ["1"]

    def test_file_format(self, store):
        store.insert("things", {"name": "a"})
        data = json.loads((store.data_dir / "things.json").read_text())
        assert data["schema_version"] == 1
        assert data["rows"][0]["name"] == "a"


class TestUpdate:
    def test_update_sets_updated_at(self, store):
        row = store.insert("things", {"n": 1})
        updated = store.update("things", row["id"], {"n": 2})
        assert updated["n"] == 2
        assert "updated_at" in updated

    def test_expect_mismatch_affects_no_rows(self, store):
        row = store.insert("things", {"state": "open"})
        assert store.update("things", row["id"], {"state": "done"}, expect={"state": "closed"}) is None
        assert store.get("things", row["id"])["state"] == "open"

    def test_unknown_id(self, store):
        assert store.update("things", "missing", {"n": 1}) is None


class TestDelete:
    def test_delete_by_ids(self, store):
        a = store.insert("things", {"n": 1})
        b = store.insert("things", {"n": 2})
        store.insert("things", {"n": 3})
        assert store.delete("things", [a["id"], b["id"], "missing"]) == 2
        assert len(store.select("things")) == 1

    def test_delete_where(self, store):
        store.insert("things", {"owner": "x"})
        store.insert("things", {"owner": "x"})
        store.insert("things", {"owner": "y"})
        assert store.delete_where("things", {"owner": "x"}) == 2
        assert [r["owner"] for r in store.select("things")] == ["y"]


class TestTransaction:
    def test_exception_discards_changes(self, store):
        store.insert("things", {"n": 1})
        with pytest.raises(RuntimeError):
            with store.transaction("things") as rows:
                rows.append({"id": "new", "n": 2})
                rows[0]["n"] = 99
                raise RuntimeError("boom")
        rows = store.select("things")
        assert len(rows) == 1
        assert rows[0]["n"] == 1

    def test_clean_exit_saves(self, store):
        with store.transaction("things") as rows:
            rows.append({"id": "x", "n": 5})
        assert store.get("things", "x")["n"] == 5
