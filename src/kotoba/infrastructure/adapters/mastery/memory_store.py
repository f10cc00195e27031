"""
In-memory adapters for the MasteryStore and WordCatalog ports.

Atomicity comes from one lock per word id. Batches lock every key they touch
(in sorted order), stage their results and publish them in one step.
"""

import itertools
import logging
import threading
from collections.abc import Iterable
from contextlib import ExitStack, contextmanager
from datetime import datetime, timezone

from kotoba.domain.constants import DEFAULT_SQLITE_TIMEOUT
from kotoba.domain.errors import StorageFailure
from kotoba.domain.mastery.models import StatsRecord, Tag, Word
from kotoba.domain.mastery.ports import MasteryStore, Mutator, WordCatalog

logger = logging.getLogger(__name__)


class MemoryMasteryStore(MasteryStore):
    """Keeps StatsRecords in a dict guarded by per-key locks."""

    def __init__(self, lock_timeout: float = DEFAULT_SQLITE_TIMEOUT):
        self._records: dict[int, StatsRecord] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def _lock_for(self, word_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(word_id)
            if lock is None:
                lock = self._locks[word_id] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, word_ids: Iterable[int]):
        with ExitStack() as stack:
            for word_id in sorted(set(word_ids)):
                lock = self._lock_for(word_id)
                if not lock.acquire(timeout=self._lock_timeout):
                    raise StorageFailure(f"Timed out waiting for record lock on word {word_id}")
                stack.callback(lock.release)
            yield

    def _publish(self, staged: dict[int, StatsRecord]) -> None:
        self._records.update(staged)

    async def get(self, word_id: int) -> StatsRecord | None:
        return self._records.get(word_id)

    async def get_many(self, word_ids: Iterable[int]) -> dict[int, StatsRecord]:
        return {wid: self._records[wid] for wid in word_ids if wid in self._records}

    async def ensure(self, word_id: int) -> StatsRecord:
        with self._locked([word_id]):
            record = self._records.get(word_id)
            if record is None:
                record = StatsRecord.empty(word_id)
                self._publish({word_id: record})
            return record

    async def update(self, word_id: int, mutator: Mutator) -> StatsRecord:
        with self._locked([word_id]):
            current = self._records.get(word_id) or StatsRecord.empty(word_id)
            updated = mutator(current)
            self._publish({word_id: updated})
            return updated

    async def update_many(self, updates: list[tuple[int, Mutator]]) -> list[StatsRecord]:
        if not updates:
            return []

        with self._locked(wid for wid, _ in updates):
            staged: dict[int, StatsRecord] = {}
            results: list[StatsRecord] = []
            for word_id, mutator in updates:
                current = (
                    staged.get(word_id)
                    or self._records.get(word_id)
                    or StatsRecord.empty(word_id)
                )
                updated = mutator(current)
                staged[word_id] = updated
                results.append(updated)
            self._publish(staged)
        return results

    async def delete(self, word_id: int) -> bool:
        with self._locked([word_id]):
            return self._records.pop(word_id, None) is not None


class MemoryWordCatalog(WordCatalog):
    """
    Word Catalog held in memory.

    If a store is given, deleting a word cascades to its StatsRecord.
    """

    def __init__(self, store: MasteryStore | None = None):
        self._store = store
        self._words: dict[int, Word] = {}
        self._tags: dict[int, Tag] = {}
        self._word_tags: set[tuple[int, int]] = set()
        self._word_ids = itertools.count(1)
        self._tag_ids = itertools.count(1)
        self._lock = threading.Lock()

    async def owner_of(self, word_id: int) -> int | None:
        word = self._words.get(word_id)
        return word.owner_id if word else None

    async def list_words(self, owner_id: int, tag_id: int | None = None) -> list[Word]:
        words = [w for w in self._words.values() if w.owner_id == owner_id]
        if tag_id is not None:
            tag = self._tags.get(tag_id)
            if tag is None or tag.owner_id != owner_id:
                return []
            words = [w for w in words if (w.id, tag_id) in self._word_tags]
        return sorted(words, key=lambda w: w.id, reverse=True)

    async def list_tags(self, owner_id: int) -> list[Tag]:
        tags = []
        for tag in self._tags.values():
            if tag.owner_id != owner_id:
                continue
            members = tuple(
                sorted(
                    wid
                    for wid, tid in self._word_tags
                    if tid == tag.id and wid in self._words and self._words[wid].owner_id == owner_id
                )
            )
            tags.append(Tag(id=tag.id, owner_id=owner_id, name=tag.name, word_ids=members))
        return sorted(tags, key=lambda t: t.name)

    async def add_word(
        self,
        owner_id: int,
        french: str,
        romaji: str | None = None,
        kana: str | None = None,
        kanji: str | None = None,
        note: str | None = None,
    ) -> Word:
        with self._lock:
            word = Word(
                id=next(self._word_ids),
                owner_id=owner_id,
                french=french,
                romaji=romaji,
                kana=kana,
                kanji=kanji,
                note=note,
                created_at=datetime.now(timezone.utc),
            )
            self._words[word.id] = word
        return word

    async def delete_word(self, owner_id: int, word_id: int) -> bool:
        with self._lock:
            word = self._words.get(word_id)
            if word is None or word.owner_id != owner_id:
                return False
            del self._words[word_id]
            self._word_tags = {(wid, tid) for wid, tid in self._word_tags if wid != word_id}
        if self._store is not None:
            await self._store.delete(word_id)
        return True

    async def add_tag(self, owner_id: int, name: str) -> int:
        with self._lock:
            for tag in self._tags.values():
                if tag.owner_id == owner_id and tag.name == name:
                    return tag.id
            tag = Tag(id=next(self._tag_ids), owner_id=owner_id, name=name)
            self._tags[tag.id] = tag
            return tag.id

    async def tag_word(self, owner_id: int, word_id: int, tag_id: int) -> bool:
        word = self._words.get(word_id)
        tag = self._tags.get(tag_id)
        if not word or not tag or word.owner_id != owner_id or tag.owner_id != owner_id:
            return False
        with self._lock:
            self._word_tags.add((word_id, tag_id))
        return True
