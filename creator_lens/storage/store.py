"""SQLite persistence for events, profiles, results, patterns, suggestions and insights.

One short-lived aiosqlite connection per operation. Nested records are kept
as pydantic JSON; the columns next to them exist only for lookups and for
the uniqueness constraints the core relies on:

  persona_profiles      user_id                          (versioned, compare-and-swap)
  content_results       id                               (insert-or-ignore dedup)
  pattern_stats         user_id, pattern_key             (upsert)
  daily_suggestions     user_id, suggestion_date, platform (upsert, last write wins)
  performance_insights  user_id, period_start            (upsert)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import date, datetime
from typing import Callable, Iterable, Optional

import aiosqlite

from creator_lens.errors import ConcurrentUpdateError
from creator_lens.models import (
    ContentResult,
    DailySuggestion,
    GenerationRecord,
    InsightContent,
    PatternStats,
    PerformanceInsight,
    PersonaEvent,
    PersonaProfile,
    Platform,
    SuggestionContent,
)

_log = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS persona_events (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        event_type  TEXT NOT NULL,
        event_json  TEXT NOT NULL,
        created_at  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_user ON persona_events (user_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS persona_profiles (
        user_id      TEXT PRIMARY KEY,
        version      INTEGER NOT NULL,
        profile_json TEXT NOT NULL,
        updated_at   TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS generations (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        pattern_key TEXT NOT NULL,
        record_json TEXT NOT NULL,
        created_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS content_results (
        id             TEXT PRIMARY KEY,
        user_id        TEXT NOT NULL,
        pattern_key    TEXT NOT NULL,
        generation_id  TEXT,
        effective_date TEXT NOT NULL,
        result_json    TEXT NOT NULL,
        created_at     TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_results_pattern ON content_results (user_id, pattern_key)",
    "CREATE INDEX IF NOT EXISTS idx_results_date ON content_results (user_id, effective_date)",
    """
    CREATE TABLE IF NOT EXISTS pattern_stats (
        user_id        TEXT NOT NULL,
        pattern_key    TEXT NOT NULL,
        platform       TEXT NOT NULL,
        tone           TEXT,
        total_results  INTEGER NOT NULL,
        weighted_score REAL NOT NULL,
        stats_json     TEXT NOT NULL,
        PRIMARY KEY (user_id, pattern_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_suggestions (
        id              TEXT PRIMARY KEY,
        user_id         TEXT NOT NULL,
        suggestion_date TEXT NOT NULL,
        platform        TEXT NOT NULL,
        content_json    TEXT NOT NULL,
        used            INTEGER NOT NULL DEFAULT 0,
        used_at         TEXT,
        generation_id   TEXT,
        created_at      TEXT NOT NULL,
        UNIQUE (user_id, suggestion_date, platform)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS performance_insights (
        id           TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        period_start TEXT NOT NULL,
        period_end   TEXT NOT NULL,
        content_json TEXT NOT NULL,
        created_at   TEXT NOT NULL,
        UNIQUE (user_id, period_start)
    )
    """,
]


def _retry_reads(fn):
    """Retry an idempotent read a bounded number of times on transient SQLite errors."""

    @functools.wraps(fn)
    async def wrapper(self: "SQLiteStore", *args, **kwargs):
        for attempt in range(self.read_retries + 1):
            try:
                return await fn(self, *args, **kwargs)
            except aiosqlite.OperationalError as exc:
                if attempt == self.read_retries:
                    raise
                _log.warning("read %s failed (attempt %d): %s", fn.__name__, attempt + 1, exc)
                await asyncio.sleep(0.05 * (2 ** attempt))

    return wrapper


def _suggestion_from_row(row) -> DailySuggestion:
    return DailySuggestion(
        id=row[0],
        user_id=row[1],
        suggestion_date=date.fromisoformat(row[2]),
        platform=Platform(row[3]),
        content=SuggestionContent.model_validate_json(row[4]),
        used=bool(row[5]),
        used_at=datetime.fromisoformat(row[6]) if row[6] else None,
        generation_id=row[7],
        created_at=datetime.fromisoformat(row[8]),
    )


def _insight_from_row(row) -> PerformanceInsight:
    return PerformanceInsight(
        id=row[0],
        user_id=row[1],
        period_start=date.fromisoformat(row[2]),
        period_end=date.fromisoformat(row[3]),
        content=InsightContent.model_validate_json(row[4]),
        created_at=datetime.fromisoformat(row[5]),
    )


_SUGGESTION_COLUMNS = (
    "id, user_id, suggestion_date, platform, content_json, used, used_at, generation_id, created_at"
)
_INSIGHT_COLUMNS = "id, user_id, period_start, period_end, content_json, created_at"


class SQLiteStore:
    """Durable store for every record the core reads or writes.

    ``db_path`` must be a file path: each call opens its own connection, so an
    in-memory database would not survive between calls.
    """

    def __init__(self, db_path: str, *, cas_retries: int = 5, read_retries: int = 2) -> None:
        self.db_path = db_path
        self.cas_retries = cas_retries
        self.read_retries = read_retries

    async def init(self) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()

    # ── Event log ────────────────────────────────────────────────────────────

    async def insert_event(self, event: PersonaEvent) -> bool:
        """Append an event. Returns False when this event id was already logged."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT OR IGNORE INTO persona_events (id, user_id, event_type, event_json, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    event.id,
                    event.user_id,
                    event.event_type.value,
                    event.model_dump_json(),
                    event.created_at.isoformat(),
                ),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def delete_event(self, user_id: str, event_id: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM persona_events WHERE user_id = ? AND id = ?", (user_id, event_id))
            await db.commit()

    @_retry_reads
    async def list_events(self, user_id: str, limit: Optional[int] = None) -> list[PersonaEvent]:
        """Events for a user, oldest first."""
        sql = "SELECT event_json FROM persona_events WHERE user_id = ? ORDER BY created_at ASC, rowid ASC"
        params: tuple = (user_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (user_id, limit)
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [PersonaEvent.model_validate_json(r[0]) for r in rows]

    # ── Persona profiles ─────────────────────────────────────────────────────

    @_retry_reads
    async def get_persona(self, user_id: str) -> Optional[PersonaProfile]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT profile_json, version FROM persona_profiles WHERE user_id = ?", (user_id,)
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        profile = PersonaProfile.model_validate_json(row[0])
        profile.version = row[1]
        return profile

    async def update_persona(
        self,
        user_id: str,
        apply: Callable[[PersonaProfile], PersonaProfile],
        create: Callable[[], PersonaProfile],
    ) -> PersonaProfile:
        """Read, apply a pure update, and write back only if nobody else wrote in between.

        A lost race re-reads and re-applies; after ``cas_retries`` losses
        ``ConcurrentUpdateError`` is raised.
        """
        for attempt in range(self.cas_retries):
            current = await self.get_persona(user_id)
            base = current if current is not None else create()
            updated = apply(base)
            updated.version = base.version + 1
            async with aiosqlite.connect(self.db_path) as db:
                if current is None:
                    cursor = await db.execute(
                        """INSERT OR IGNORE INTO persona_profiles (user_id, version, profile_json, updated_at)
                           VALUES (?, ?, ?, ?)""",
                        (user_id, updated.version, updated.model_dump_json(), updated.last_updated_at.isoformat()),
                    )
                else:
                    cursor = await db.execute(
                        """UPDATE persona_profiles SET version = ?, profile_json = ?, updated_at = ?
                           WHERE user_id = ? AND version = ?""",
                        (
                            updated.version,
                            updated.model_dump_json(),
                            updated.last_updated_at.isoformat(),
                            user_id,
                            base.version,
                        ),
                    )
                if cursor.rowcount == 1:
                    await db.commit()
                    return updated
            _log.info("persona write for %s lost a race (attempt %d), retrying", user_id, attempt + 1)
        raise ConcurrentUpdateError(f"persona update for {user_id} conflicted {self.cas_retries} times")

    # ── Generations ──────────────────────────────────────────────────────────

    async def insert_generation(self, record: GenerationRecord, pattern_key: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT OR IGNORE INTO generations (id, user_id, pattern_key, record_json, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (record.id, record.user_id, pattern_key, record.model_dump_json(), record.created_at.isoformat()),
            )
            await db.commit()
            return cursor.rowcount == 1

    @_retry_reads
    async def get_generation(self, user_id: str, generation_id: str) -> Optional[GenerationRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT record_json FROM generations WHERE user_id = ? AND id = ?", (user_id, generation_id)
            ) as cursor:
                row = await cursor.fetchone()
        return GenerationRecord.model_validate_json(row[0]) if row else None

    @_retry_reads
    async def count_generations(self, user_id: str, pattern_key: str) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM generations WHERE user_id = ? AND pattern_key = ?", (user_id, pattern_key)
            ) as cursor:
                row = await cursor.fetchone()
        return row[0]

    # ── Content results ──────────────────────────────────────────────────────

    async def insert_result(self, result: ContentResult) -> bool:
        """Store a result once. Returns False when the id is already present."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT OR IGNORE INTO content_results
                   (id, user_id, pattern_key, generation_id, effective_date, result_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    result.id,
                    result.user_id,
                    result.pattern_key,
                    result.generation_id,
                    result.effective_date.isoformat(),
                    result.model_dump_json(),
                    result.created_at.isoformat(),
                ),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def replace_result(self, result: ContentResult) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """UPDATE content_results SET pattern_key = ?, effective_date = ?, result_json = ?
                   WHERE id = ? AND user_id = ?""",
                (
                    result.pattern_key,
                    result.effective_date.isoformat(),
                    result.model_dump_json(),
                    result.id,
                    result.user_id,
                ),
            )
            await db.commit()

    @_retry_reads
    async def get_result(self, user_id: str, result_id: str) -> Optional[ContentResult]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT result_json FROM content_results WHERE user_id = ? AND id = ?", (user_id, result_id)
            ) as cursor:
                row = await cursor.fetchone()
        return ContentResult.model_validate_json(row[0]) if row else None

    @_retry_reads
    async def results_for_pattern(self, user_id: str, pattern_key: str) -> list[ContentResult]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT result_json FROM content_results WHERE user_id = ? AND pattern_key = ? ORDER BY created_at",
                (user_id, pattern_key),
            ) as cursor:
                rows = await cursor.fetchall()
        return [ContentResult.model_validate_json(r[0]) for r in rows]

    @_retry_reads
    async def results_between(self, user_id: str, start: date, end: date) -> list[ContentResult]:
        """Results whose posted (or recorded) date falls in [start, end], newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """SELECT result_json FROM content_results
                   WHERE user_id = ? AND effective_date BETWEEN ? AND ?
                   ORDER BY effective_date DESC, created_at DESC""",
                (user_id, start.isoformat(), end.isoformat()),
            ) as cursor:
                rows = await cursor.fetchall()
        return [ContentResult.model_validate_json(r[0]) for r in rows]

    @_retry_reads
    async def recent_results(self, user_id: str, limit: int = 20) -> list[ContentResult]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT result_json FROM content_results WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        return [ContentResult.model_validate_json(r[0]) for r in rows]

    @_retry_reads
    async def pattern_keys(self, user_id: str) -> list[str]:
        """Every key that has at least one generation or result for the user."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """SELECT pattern_key FROM content_results WHERE user_id = ?
                   UNION
                   SELECT pattern_key FROM generations WHERE user_id = ?
                   ORDER BY pattern_key""",
                (user_id, user_id),
            ) as cursor:
                rows = await cursor.fetchall()
        return [r[0] for r in rows]

    # ── Pattern stats ────────────────────────────────────────────────────────

    async def upsert_pattern(self, stats: PatternStats) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO pattern_stats
                   (user_id, pattern_key, platform, tone, total_results, weighted_score, stats_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT (user_id, pattern_key) DO UPDATE SET
                     total_results = excluded.total_results,
                     weighted_score = excluded.weighted_score,
                     stats_json = excluded.stats_json""",
                (
                    stats.user_id,
                    stats.pattern_key,
                    stats.platform.value,
                    stats.tone.value if stats.tone else None,
                    stats.total_results,
                    stats.weighted_score,
                    stats.model_dump_json(),
                ),
            )
            await db.commit()

    @_retry_reads
    async def get_pattern(self, user_id: str, pattern_key: str) -> Optional[PatternStats]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT stats_json FROM pattern_stats WHERE user_id = ? AND pattern_key = ?", (user_id, pattern_key)
            ) as cursor:
                row = await cursor.fetchone()
        return PatternStats.model_validate_json(row[0]) if row else None

    @_retry_reads
    async def list_patterns(self, user_id: str) -> list[PatternStats]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT stats_json FROM pattern_stats WHERE user_id = ? ORDER BY pattern_key", (user_id,)
            ) as cursor:
                rows = await cursor.fetchall()
        return [PatternStats.model_validate_json(r[0]) for r in rows]

    @_retry_reads
    async def top_patterns(
        self,
        user_id: str,
        platforms: Optional[Iterable[Platform]] = None,
        limit: int = 10,
        min_results: int = 1,
    ) -> list[PatternStats]:
        """Patterns with at least ``min_results`` results, best weighted score first.

        Equal scores fall back to pattern key order so the ranking is stable.
        """
        sql = "SELECT stats_json FROM pattern_stats WHERE user_id = ? AND total_results >= ?"
        params: list = [user_id, min_results]
        if platforms is not None:
            values = [p.value for p in platforms]
            if not values:
                return []
            sql += f" AND platform IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY weighted_score DESC, pattern_key ASC LIMIT ?"
        params.append(limit)
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [PatternStats.model_validate_json(r[0]) for r in rows]

    # ── Daily suggestions ────────────────────────────────────────────────────

    async def upsert_suggestion(self, suggestion: DailySuggestion) -> DailySuggestion:
        """Write the suggestion for (user, date, platform); an existing row keeps its id."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"""INSERT INTO daily_suggestions ({_SUGGESTION_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, 0, NULL, NULL, ?)
                    ON CONFLICT (user_id, suggestion_date, platform) DO UPDATE SET
                      content_json = excluded.content_json,
                      used = 0,
                      used_at = NULL,
                      generation_id = NULL""",
                (
                    suggestion.id,
                    suggestion.user_id,
                    suggestion.suggestion_date.isoformat(),
                    suggestion.platform.value,
                    suggestion.content.model_dump_json(),
                    suggestion.created_at.isoformat(),
                ),
            )
            await db.commit()
            async with db.execute(
                f"""SELECT {_SUGGESTION_COLUMNS} FROM daily_suggestions
                    WHERE user_id = ? AND suggestion_date = ? AND platform = ?""",
                (suggestion.user_id, suggestion.suggestion_date.isoformat(), suggestion.platform.value),
            ) as cursor:
                row = await cursor.fetchone()
        return _suggestion_from_row(row)

    @_retry_reads
    async def suggestions_for_day(self, user_id: str, day: date) -> list[DailySuggestion]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"""SELECT {_SUGGESTION_COLUMNS} FROM daily_suggestions
                    WHERE user_id = ? AND suggestion_date = ? ORDER BY created_at DESC""",
                (user_id, day.isoformat()),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_suggestion_from_row(r) for r in rows]

    @_retry_reads
    async def list_suggestions(self, user_id: str) -> list[DailySuggestion]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {_SUGGESTION_COLUMNS} FROM daily_suggestions WHERE user_id = ? ORDER BY suggestion_date",
                (user_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_suggestion_from_row(r) for r in rows]

    async def mark_suggestion_used(
        self,
        user_id: str,
        suggestion_id: str,
        used_at: datetime,
        generation_id: Optional[str] = None,
    ) -> Optional[DailySuggestion]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """UPDATE daily_suggestions SET used = 1, used_at = ?, generation_id = ?
                   WHERE user_id = ? AND id = ?""",
                (used_at.isoformat(), generation_id, user_id, suggestion_id),
            )
            if cursor.rowcount == 0:
                return None
            await db.commit()
            async with db.execute(
                f"SELECT {_SUGGESTION_COLUMNS} FROM daily_suggestions WHERE id = ?", (suggestion_id,)
            ) as cur:
                row = await cur.fetchone()
        return _suggestion_from_row(row) if row else None

    # ── Weekly insights ──────────────────────────────────────────────────────

    async def upsert_insight(self, insight: PerformanceInsight) -> PerformanceInsight:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"""INSERT INTO performance_insights ({_INSIGHT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT (user_id, period_start) DO UPDATE SET
                      period_end = excluded.period_end,
                      content_json = excluded.content_json,
                      created_at = excluded.created_at""",
                (
                    insight.id,
                    insight.user_id,
                    insight.period_start.isoformat(),
                    insight.period_end.isoformat(),
                    insight.content.model_dump_json(),
                    insight.created_at.isoformat(),
                ),
            )
            await db.commit()
            async with db.execute(
                f"SELECT {_INSIGHT_COLUMNS} FROM performance_insights WHERE user_id = ? AND period_start = ?",
                (insight.user_id, insight.period_start.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
        return _insight_from_row(row)

    @_retry_reads
    async def get_insight(self, user_id: str, period_start: date) -> Optional[PerformanceInsight]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {_INSIGHT_COLUMNS} FROM performance_insights WHERE user_id = ? AND period_start = ?",
                (user_id, period_start.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
        return _insight_from_row(row) if row else None

    @_retry_reads
    async def latest_insight(self, user_id: str) -> Optional[PerformanceInsight]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"""SELECT {_INSIGHT_COLUMNS} FROM performance_insights
                    WHERE user_id = ? ORDER BY period_start DESC LIMIT 1""",
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _insight_from_row(row) if row else None
