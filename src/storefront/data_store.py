"""Table storage for storefront.

Each table is one JSON file under the data directory. Every
read-modify-write runs under an exclusive ``flock`` on the table's lock
file, so conditional updates are atomic with respect to other writers
(threads or processes) using the same directory.
"""

import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from .errors import UniqueConstraintError
from .models import _generate_id, _utc_now

SCHEMA_VERSION = 1

Row = dict[str, Any]


class DataStore:
    """Manages the JSON table files."""

    def __init__(self, data_dir: Path):
        """
        Initialize DataStore.

        Args:
            data_dir: Directory holding one ``<table>.json`` file per table.
        """
        self.data_dir = Path(data_dir)

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _table_path(self, table: str) -> Path:
        return self.data_dir / f"{table}.json"

    @contextmanager
    def _lock(self, table: str) -> Iterator[None]:
        """Acquire exclusive lock on a table for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.data_dir / f".{table}.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_rows(self, table: str) -> list[Row]:
        """Load table rows from disk."""
        path = self._table_path(table)
        if not path.exists():
            return []

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f).get("rows", [])

    def _save_rows(self, table: str, rows: list[Row]) -> None:
        """Save table rows to disk atomically."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=f".{table}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"schema_version": SCHEMA_VERSION, "rows": rows}, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self._table_path(table))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    @contextmanager
    def transaction(self, table: str) -> Iterator[list[Row]]:
        """
        Lock a table and yield its rows for in-place modification.

        Changes are written back only if the block exits without an
        exception, so raising inside the block discards every change.
        """
        with self._lock(table):
            rows = self._load_rows(table)
            yield rows
            self._save_rows(table, rows)

    def get(self, table: str, row_id: str) -> Row | None:
        """Point lookup by id."""
        for row in self._load_rows(table):
            if row.get("id") == row_id:
                return row
        return None

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        where: Callable[[Row], bool] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """
        Filtered list.

        Args:
            filters: Column equality filters.
            where: Extra predicate for range filters.
            order_by: Column to sort by.
            descending: Sort direction.
            limit: Maximum number of rows.
        """
        rows = self._load_rows(table)
        if filters:
            rows = [r for r in rows if all(r.get(k) == v for k, v in filters.items())]
        if where is not None:
            rows = [r for r in rows if where(r)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        if limit:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, row: Row, unique: Iterable[str] = ()) -> Row:
        """
        Insert a row and return it.

        An ``id`` and ``created_at`` are filled in when missing.

        Raises:
            UniqueConstraintError: If a ``unique`` column value already exists.
        """
        row = dict(row)
        row.setdefault("id", _generate_id())
        row.setdefault("created_at", _utc_now())

        with self.transaction(table) as rows:
            for column in ("id", *unique):
                value = row.get(column)
                if any(r.get(column) == value for r in rows):
                    raise UniqueConstraintError(table, column, value)
            rows.append(row)

        return row

    def update(
        self,
        table: str,
        row_id: str,
        changes: dict[str, Any],
        expect: dict[str, Any] | None = None,
    ) -> Row | None:
        """
        Conditionally update one row.

        Returns:
            The updated row, or None when no row matched the id and the
            ``expect`` conditions (zero affected rows).
        """
        with self.transaction(table) as rows:
            for row in rows:
                if row.get("id") != row_id:
                    continue
                if expect and any(row.get(k) != v for k, v in expect.items()):
                    return None
                row.update(changes)
                row["updated_at"] = _utc_now()
                return dict(row)
        return None

    def delete(self, table: str, row_ids: Iterable[str]) -> int:
        """Delete rows by id. Returns the number of rows removed."""
        ids = set(row_ids)
        with self.transaction(table) as rows:
            before = len(rows)
            rows[:] = [r for r in rows if r.get("id") not in ids]
            return before - len(rows)

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        """Delete rows matching all equality filters."""
        with self.transaction(table) as rows:
            before = len(rows)
            rows[:] = [
                r for r in rows if not all(r.get(k) == v for k, v in filters.items())
            ]
            return before - len(rows)
