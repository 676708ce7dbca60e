"""
RankingCacheEntry: one key/value document of the durable ranking cache.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from quizrank.core.database.base import Base, TimestampMixin


class RankingCacheEntry(Base, TimestampMixin):
    """
    A serialized ranking document (snapshot, per-user history, or index)
    stored under its cache key.
    """

    __tablename__ = "ranking_cache_entries"
    __table_args__ = (Index("ix_ranking_cache_updated", "updated_at"),)

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<RankingCacheEntry key={self.key!r} bytes={len(self.value or '')}>"
