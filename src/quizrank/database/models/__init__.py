"""
Model registry.

Importing this package registers every table on `Base.metadata`.
"""

from quizrank.database.models.cache_entry import RankingCacheEntry

__all__ = ["RankingCacheEntry"]
