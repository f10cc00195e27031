"""
SQLite adapters for the MasteryStore and WordCatalog ports.

Both adapters share one SqliteDatabase (one file, one connection). Every
write runs in a BEGIN IMMEDIATE transaction, so a record's
read-modify-write and a whole review batch are atomic.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from kotoba.domain.constants import CHUNK_SIZE, DEFAULT_SQLITE_TIMEOUT
from kotoba.domain.errors import NotFound, StorageFailure
from kotoba.domain.mastery.models import StatsRecord, Tag, Word
from kotoba.domain.mastery.ports import MasteryStore, Mutator, WordCatalog

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS words (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    french TEXT NOT NULL,
    romaji TEXT,
    kana TEXT,
    kanji TEXT,
    note TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS word_stats (
    word_id INTEGER PRIMARY KEY,
    success_count INTEGER NOT NULL DEFAULT 0,
    partial_count INTEGER NOT NULL DEFAULT 0,
    fail_count INTEGER NOT NULL DEFAULT 0,
    score INTEGER NOT NULL DEFAULT 0,
    last_reviewed_at TEXT,
    FOREIGN KEY(word_id) REFERENCES words(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS word_tags (
    word_id INTEGER NOT NULL,
    tag_id INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (word_id, tag_id),
    FOREIGN KEY(word_id) REFERENCES words(id) ON DELETE CASCADE,
    FOREIGN KEY(tag_id) REFERENCES tags(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_word_tags_tag_id ON word_tags(tag_id);
CREATE INDEX IF NOT EXISTS idx_words_user_id ON words(user_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_tags_user_id_name ON tags(user_id, name);
"""

_STATS_COLUMNS = "word_id, success_count, partial_count, fail_count, score, last_reviewed_at"
_WORD_COLUMNS = "id, user_id, french, romaji, kana, kanji, note, created_at"


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        # SQLite's datetime('now') is UTC without an offset.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_stats(row: sqlite3.Row) -> StatsRecord:
    return StatsRecord(
        word_id=row["word_id"],
        success_count=row["success_count"],
        partial_count=row["partial_count"],
        fail_count=row["fail_count"],
        score=row["score"],
        last_reviewed_at=_parse_timestamp(row["last_reviewed_at"]),
    )


def _row_to_word(row: sqlite3.Row) -> Word:
    return Word(
        id=row["id"],
        owner_id=row["user_id"],
        french=row["french"],
        romaji=row["romaji"],
        kana=row["kana"],
        kanji=row["kanji"],
        note=row["note"],
        created_at=_parse_timestamp(row["created_at"]),
    )


class SqliteDatabase:
    """
    Owns the connection and schema shared by the SQLite adapters.

    Access is serialized by a lock; waiting on it or on SQLite's own file
    lock is bounded by ``timeout`` and reported as StorageFailure.
    """

    def __init__(self, db_path: Path | str, timeout: float = DEFAULT_SQLITE_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout
        self._lock = threading.Lock()
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(db_path),
                timeout=timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if str(db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageFailure(f"Could not open database {db_path}: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _acquire(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout):
            raise StorageFailure("Timed out waiting for the database connection")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def read(self) -> Iterator[sqlite3.Cursor]:
        with self._acquire():
            try:
                yield self._conn.cursor()
            except sqlite3.Error as e:
                raise StorageFailure(f"Read failed: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run the body in a write transaction; any exception rolls it back."""
        with self._acquire():
            cursor = self._conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageFailure(f"Could not start transaction: {e}") from e
            try:
                yield cursor
                cursor.execute("COMMIT")
            except BaseException as e:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                if isinstance(e, sqlite3.Error):
                    raise StorageFailure(f"Transaction rolled back: {e}") from e
                raise


class SqliteMasteryStore(MasteryStore):
    """Persists StatsRecords in the ``word_stats`` table."""

    def __init__(self, db: SqliteDatabase):
        self.db = db

    def _load_or_create(self, cursor: sqlite3.Cursor, word_id: int) -> StatsRecord:
        try:
            cursor.execute("INSERT OR IGNORE INTO word_stats (word_id) VALUES (?)", (word_id,))
        except sqlite3.IntegrityError as e:
            # The word was deleted after the caller authorized it.
            raise NotFound(f"Word {word_id} not found") from e
        row = cursor.execute(
            f"SELECT {_STATS_COLUMNS} FROM word_stats WHERE word_id = ?", (word_id,)
        ).fetchone()
        return _row_to_stats(row)

    def _write(self, cursor: sqlite3.Cursor, record: StatsRecord) -> None:
        cursor.execute(
            """
            UPDATE word_stats
               SET success_count = ?, partial_count = ?, fail_count = ?,
                   score = ?, last_reviewed_at = ?
             WHERE word_id = ?
            """,
            (
                record.success_count,
                record.partial_count,
                record.fail_count,
                record.score,
                record.last_reviewed_at.isoformat() if record.last_reviewed_at else None,
                record.word_id,
            ),
        )

    async def get(self, word_id: int) -> StatsRecord | None:
        with self.db.read() as cursor:
            row = cursor.execute(
                f"SELECT {_STATS_COLUMNS} FROM word_stats WHERE word_id = ?", (word_id,)
            ).fetchone()
        return _row_to_stats(row) if row else None

    async def get_many(self, word_ids: Iterable[int]) -> dict[int, StatsRecord]:
        ids = list(dict.fromkeys(word_ids))
        records: dict[int, StatsRecord] = {}
        with self.db.read() as cursor:
            for i in range(0, len(ids), CHUNK_SIZE):
                chunk = ids[i : i + CHUNK_SIZE]
                placeholders = ",".join("?" for _ in chunk)
                rows = cursor.execute(
                    f"SELECT {_STATS_COLUMNS} FROM word_stats WHERE word_id IN ({placeholders})",
                    chunk,
                ).fetchall()
                for row in rows:
                    records[row["word_id"]] = _row_to_stats(row)
        return records

    async def ensure(self, word_id: int) -> StatsRecord:
        with self.db.transaction() as cursor:
            return self._load_or_create(cursor, word_id)

    async def update(self, word_id: int, mutator: Mutator) -> StatsRecord:
        with self.db.transaction() as cursor:
            updated = mutator(self._load_or_create(cursor, word_id))
            self._write(cursor, updated)
        return updated

    async def update_many(self, updates: list[tuple[int, Mutator]]) -> list[StatsRecord]:
        results: list[StatsRecord] = []
        if not updates:
            return results
        with self.db.transaction() as cursor:
            for word_id, mutator in updates:
                updated = mutator(self._load_or_create(cursor, word_id))
                self._write(cursor, updated)
                results.append(updated)
        return results

    async def delete(self, word_id: int) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM word_stats WHERE word_id = ?", (word_id,))
            return cursor.rowcount > 0


class SqliteWordCatalog(WordCatalog):
    """Word Catalog over the ``words``, ``tags`` and ``word_tags`` tables."""

    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def owner_of(self, word_id: int) -> int | None:
        with self.db.read() as cursor:
            row = cursor.execute("SELECT user_id FROM words WHERE id = ?", (word_id,)).fetchone()
        return row["user_id"] if row else None

    async def list_words(self, owner_id: int, tag_id: int | None = None) -> list[Word]:
        with self.db.read() as cursor:
            if tag_id is None:
                rows = cursor.execute(
                    f"SELECT {_WORD_COLUMNS} FROM words WHERE user_id = ? ORDER BY id DESC",
                    (owner_id,),
                ).fetchall()
            else:
                rows = cursor.execute(
                    """
                    SELECT w.id, w.user_id, w.french, w.romaji, w.kana, w.kanji,
                           w.note, w.created_at
                      FROM words w
                     INNER JOIN word_tags wt ON wt.word_id = w.id
                     INNER JOIN tags t ON t.id = wt.tag_id
                     WHERE wt.tag_id = ? AND w.user_id = ? AND t.user_id = ?
                     ORDER BY w.id DESC
                    """,
                    (tag_id, owner_id, owner_id),
                ).fetchall()
        return [_row_to_word(row) for row in rows]

    async def list_tags(self, owner_id: int) -> list[Tag]:
        with self.db.read() as cursor:
            tag_rows = cursor.execute(
                "SELECT id, name FROM tags WHERE user_id = ? ORDER BY name ASC", (owner_id,)
            ).fetchall()
            member_rows = cursor.execute(
                """
                SELECT wt.tag_id, wt.word_id
                  FROM word_tags wt
                 INNER JOIN words w ON w.id = wt.word_id
                 WHERE w.user_id = ?
                 ORDER BY wt.word_id
                """,
                (owner_id,),
            ).fetchall()

        members: dict[int, list[int]] = {}
        for row in member_rows:
            members.setdefault(row["tag_id"], []).append(row["word_id"])
        return [
            Tag(
                id=row["id"],
                owner_id=owner_id,
                name=row["name"],
                word_ids=tuple(members.get(row["id"], [])),
            )
            for row in tag_rows
        ]

    async def add_word(
        self,
        owner_id: int,
        french: str,
        romaji: str | None = None,
        kana: str | None = None,
        kanji: str | None = None,
        note: str | None = None,
    ) -> Word:
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO words (user_id, french, romaji, kana, kanji, note) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (owner_id, french, romaji, kana, kanji, note),
            )
            row = cursor.execute(
                f"SELECT {_WORD_COLUMNS} FROM words WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return _row_to_word(row)

    async def delete_word(self, owner_id: int, word_id: int) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM words WHERE id = ? AND user_id = ?", (word_id, owner_id))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted word {word_id} (stats cascaded)")
        return deleted

    async def add_tag(self, owner_id: int, name: str) -> int:
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO tags (user_id, name) VALUES (?, ?)", (owner_id, name)
            )
            row = cursor.execute(
                "SELECT id FROM tags WHERE user_id = ? AND name = ?", (owner_id, name)
            ).fetchone()
        return row["id"]

    async def tag_word(self, owner_id: int, word_id: int, tag_id: int) -> bool:
        with self.db.transaction() as cursor:
            owned = cursor.execute(
                """
                SELECT 1 FROM words w, tags t
                 WHERE w.id = ? AND w.user_id = ? AND t.id = ? AND t.user_id = ?
                """,
                (word_id, owner_id, tag_id, owner_id),
            ).fetchone()
            if not owned:
                return False
            cursor.execute(
                "INSERT OR IGNORE INTO word_tags (word_id, tag_id) VALUES (?, ?)",
                (word_id, tag_id),
            )
        return True
