# Domain Mastery Package
from .models import ReviewOutcome, SeriesSummary, StatsRecord, Tag, Word, WordWithStats
from .ports import MasteryStore, Mutator, WordCatalog

__all__ = [
    "ReviewOutcome",
    "StatsRecord",
    "Word",
    "WordWithStats",
    "Tag",
    "SeriesSummary",
    "MasteryStore",
    "WordCatalog",
    "Mutator",
]
