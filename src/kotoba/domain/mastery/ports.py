"""
Ports (interfaces) for mastery storage and the word catalog.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from .models import StatsRecord, Tag, Word

Mutator = Callable[[StatsRecord], StatsRecord]


class MasteryStore(ABC):
    """
    Port for durable per-word StatsRecords.

    Implementations:
        - MemoryMasteryStore: per-key locks, staged batch commits.
        - SqliteMasteryStore: SQLite transactions.

    Every write method must be atomic per ``word_id``; ``update_many`` must be
    all-or-nothing. Driver errors are raised as StorageFailure.
    """

    @abstractmethod
    async def get(self, word_id: int) -> StatsRecord | None:
        """Return the stored record, or None if the word was never referenced."""

    @abstractmethod
    async def get_many(self, word_ids: Iterable[int]) -> dict[int, StatsRecord]:
        """Return stored records keyed by word id; absent ids are omitted."""

    @abstractmethod
    async def ensure(self, word_id: int) -> StatsRecord:
        """Create an all-zero record if absent (idempotent) and return the stored one."""

    @abstractmethod
    async def update(self, word_id: int, mutator: Mutator) -> StatsRecord:
        """
        Atomically load (creating if absent), apply ``mutator`` and store.

        Args:
            word_id: Key of the record.
            mutator: Pure function computing the next record state.

        Returns:
            The persisted record.
        """

    @abstractmethod
    async def update_many(self, updates: list[tuple[int, Mutator]]) -> list[StatsRecord]:
        """
        Apply ``updates`` in order inside a single all-or-nothing unit.

        Repeated word ids see the result of earlier updates in the same batch.

        Returns:
            The persisted record after each update, in input order.
        """

    @abstractmethod
    async def delete(self, word_id: int) -> bool:
        """Remove a record. Returns True if one existed."""


class WordCatalog(ABC):
    """
    Port onto the external Word Catalog (words, tags/series and ownership).

    The engine reads ownership for authorization and words for ranked views.
    Write methods exist so adapters can be seeded by the CLI and tests.
    """

    @abstractmethod
    async def owner_of(self, word_id: int) -> int | None:
        """Return the owning scope id, or None if the word does not exist."""

    @abstractmethod
    async def list_words(self, owner_id: int, tag_id: int | None = None) -> list[Word]:
        """Return words of a scope (optionally restricted to one tag), newest first."""

    @abstractmethod
    async def list_tags(self, owner_id: int) -> list[Tag]:
        """Return the tags of a scope with their member word ids, ordered by name."""

    @abstractmethod
    async def add_word(
        self,
        owner_id: int,
        french: str,
        romaji: str | None = None,
        kana: str | None = None,
        kanji: str | None = None,
        note: str | None = None,
    ) -> Word:
        """Create a word for a scope."""

    @abstractmethod
    async def delete_word(self, owner_id: int, word_id: int) -> bool:
        """Delete a word and cascade its StatsRecord. Returns False if not owned."""

    @abstractmethod
    async def add_tag(self, owner_id: int, name: str) -> int:
        """Create (or reuse) a tag by name for a scope and return its id."""

    @abstractmethod
    async def tag_word(self, owner_id: int, word_id: int, tag_id: int) -> bool:
        """Attach a tag to a word. Both must belong to the scope."""
