"""Repository pattern storage layer for the Content Hub daemon."""

import functools
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

from .database import get_db_connection
from .errors import PersistenceError, SlugConflictError
from .models import (
    Article,
    GenerationTask,
    KeywordPlan,
    KeywordStatus,
    TaskStatus,
    TaskType,
    Website,
    to_db_time,
)
from .text import keyword_hash, normalize_keyword, slugify

STALE_CLAIM_REASON = "Generation abandoned: claim went stale"


def _serialized(method):
    """Run a write method under the instance's write lock.

    A Storage can be shared across threads (check_same_thread=False), and a
    sqlite connection has one transaction, so writers must not interleave.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._write_lock:
            return method(self, *args, **kwargs)

    return wrapper


class Storage:
    """Repository for all database operations.

    Implements the repository pattern - all SQL stays in this class.
    Uses connection reuse pattern for efficiency. Every sqlite3 error is
    re-raised as PersistenceError so callers can tell store failures apart
    from generation failures.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize storage with database connection.

        Args:
            db_path: Optional custom database path for testing.
                     Defaults to $XDG_DATA_HOME/contenthub/contenthub.db
        """
        self.db_path = db_path
        self._conn = None  # Lazy connection initialization
        self._write_lock = threading.RLock()
        # Fail fast if the database is missing
        test_conn = get_db_connection(self.db_path)
        test_conn.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection with lazy initialization."""
        if self._conn is None:
            self._conn = get_db_connection(self.db_path)
        return self._conn

    def close(self) -> None:
        """Close the database connection if open."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _begin_immediate(self) -> None:
        """Take the write lock up front so conditional updates can't race."""
        if not self.conn.in_transaction:
            self.conn.execute("BEGIN IMMEDIATE")

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except sqlite3.Error:
            pass  # Caller raises the triggering error

    # ------------------------------------------------------------------
    # Websites and categories
    # ------------------------------------------------------------------

    @_serialized
    def add_website(
        self,
        name: str,
        domain: str,
        description: Optional[str] = None,
        url: Optional[str] = None,
        is_active: bool = True,
        auto_generate_enabled: bool = False,
        max_articles_per_day: int = 5,
        timezone: Optional[str] = None,
        default_language: str = "en",
        created_at: Optional[datetime] = None,
    ) -> str:
        """Add a website.

        Websites are normally managed by the admin layer; this exists for
        seeding and tests.

        Returns:
            The UUID of the inserted website

        Raises:
            ValueError: If max_articles_per_day is below 1
            PersistenceError: If database operation fails
        """
        if max_articles_per_day < 1:
            raise ValueError(
                f"max_articles_per_day must be at least 1, got {max_articles_per_day}"
            )

        website_id = str(uuid.uuid4())
        created = to_db_time(created_at or datetime.now())
        try:
            self.conn.execute(
                """
                INSERT INTO websites (
                    id, name, domain, description, url, default_language,
                    timezone, is_active, auto_generate_enabled,
                    max_articles_per_day, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    website_id,
                    name,
                    domain,
                    description,
                    url or f"https://{domain}",
                    default_language,
                    timezone,
                    int(is_active),
                    int(auto_generate_enabled),
                    max_articles_per_day,
                    created,
                    created,
                ),
            )
            self.conn.commit()
            return website_id

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to add website: {e}") from e

    def get_website(self, website_id: str) -> Optional[Website]:
        try:
            cursor = self.conn.execute(
                "SELECT * FROM websites WHERE id = ?", (website_id,)
            )
            row = cursor.fetchone()
            return Website.from_row(row) if row else None

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get website: {e}") from e

    def get_eligible_websites(self) -> List[Website]:
        """Get websites that are active and have auto generation enabled.

        Ordered by creation time (id as tiebreak), which is the stable order
        the rotation policy indexes into.
        """
        try:
            cursor = self.conn.execute(
                """
                SELECT * FROM websites
                WHERE is_active = 1 AND auto_generate_enabled = 1
                ORDER BY created_at ASC, id ASC
                """
            )
            return [Website.from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get eligible websites: {e}") from e

    @_serialized
    def add_category(
        self,
        name: str,
        website_id: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        category_id = str(uuid.uuid4())
        try:
            self.conn.execute(
                """
                INSERT INTO categories (id, website_id, name, slug, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    category_id,
                    website_id,
                    name,
                    slug or slugify(name),
                    description,
                    to_db_time(datetime.now()),
                ),
            )
            self.conn.commit()
            return category_id

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to add category: {e}") from e

    # ------------------------------------------------------------------
    # Keyword plans
    # ------------------------------------------------------------------

    @_serialized
    def add_keyword_plan(
        self,
        website_id: str,
        keyword: str,
        category_id: Optional[str] = None,
        priority: int = 3,
        search_volume: Optional[int] = None,
        difficulty: Optional[int] = None,
        competition: Optional[str] = None,
        import_source: str = "manual",
        created_at: Optional[datetime] = None,
    ) -> Optional[str]:
        """Add a pending keyword plan with deduplication.

        The dedup key is unique per (normalized keyword, website), so the
        same keyword can be planned for several websites.

        Returns:
            The UUID of the inserted plan, or None if duplicate

        Raises:
            ValueError: If keyword is blank or priority is outside 1-5
            PersistenceError: If database operation fails
        """
        if not normalize_keyword(keyword):
            raise ValueError("Keyword cannot be empty")
        if not 1 <= priority <= 5:
            raise ValueError(f"priority must be between 1 and 5, got {priority}")

        dedup_key = keyword_hash(keyword, website_id)
        created = to_db_time(created_at or datetime.now())

        try:
            cursor = self.conn.execute(
                "SELECT id FROM keyword_plans WHERE keyword_hash = ?", (dedup_key,)
            )
            if cursor.fetchone():
                return None

            plan_id = str(uuid.uuid4())
            self.conn.execute(
                """
                INSERT INTO keyword_plans (
                    id, website_id, category_id, keyword, keyword_hash,
                    search_volume, difficulty, competition, priority, status,
                    import_source, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?)
                """,
                (
                    plan_id,
                    website_id,
                    category_id,
                    keyword.strip(),
                    dedup_key,
                    search_volume,
                    difficulty,
                    competition,
                    priority,
                    import_source,
                    created,
                    created,
                ),
            )
            self.conn.commit()
            return plan_id

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to add keyword plan: {e}") from e

    def get_keyword_plan(self, plan_id: str) -> Optional[KeywordPlan]:
        try:
            cursor = self.conn.execute(
                "SELECT * FROM keyword_plans WHERE id = ?", (plan_id,)
            )
            row = cursor.fetchone()
            return KeywordPlan.from_row(row) if row else None

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get keyword plan: {e}") from e

    def get_pending_keyword_plans(
        self, website_id: str, limit: int
    ) -> List[KeywordPlan]:
        """Get pending, unlinked plans for a website in queue order.

        Queue order is priority ascending (1 = most urgent), then oldest
        first.
        """
        if limit <= 0:
            return []

        try:
            cursor = self.conn.execute(
                """
                SELECT * FROM keyword_plans
                WHERE website_id = ? AND status = 'pending' AND article_id IS NULL
                ORDER BY priority ASC, created_at ASC, id ASC
                LIMIT ?
                """,
                (website_id, limit),
            )
            return [KeywordPlan.from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get pending keyword plans: {e}") from e

    # ------------------------------------------------------------------
    # Generation tasks: claim and resolve
    # ------------------------------------------------------------------

    def count_completed_tasks(
        self, website_id: str, start: datetime, end: datetime
    ) -> int:
        """Count completed tasks for a website with completed_at in [start, end)."""
        try:
            cursor = self.conn.execute(
                """
                SELECT COUNT(*) FROM generation_tasks
                WHERE website_id = ? AND status = 'completed'
                  AND completed_at >= ? AND completed_at < ?
                """,
                (website_id, to_db_time(start), to_db_time(end)),
            )
            return cursor.fetchone()[0]

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to count completed tasks: {e}") from e

    @_serialized
    def claim_keyword_plan(
        self,
        plan_id: str,
        website_id: str,
        started_at: datetime,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        prompt: Optional[str] = None,
        task_type: TaskType = TaskType.AUTO,
    ) -> Optional[str]:
        """Atomically move a plan from pending to processing and open a task.

        The status flip is a conditional update, so when two runs race for
        the same plan exactly one of them sees a row change. Both writes
        commit together.

        Returns:
            The UUID of the new generation task, or None if the plan was not
            pending anymore (another run claimed it)

        Raises:
            PersistenceError: If database operation fails
        """
        started = to_db_time(started_at)
        try:
            self._begin_immediate()
            cursor = self.conn.execute(
                """
                UPDATE keyword_plans
                SET status = 'processing', failure_reason = NULL, updated_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (started, plan_id),
            )
            if cursor.rowcount == 0:
                self.conn.rollback()
                return None

            task_id = str(uuid.uuid4())
            self.conn.execute(
                """
                INSERT INTO generation_tasks (
                    id, website_id, keyword_plan_id, type, status, model,
                    temperature, prompt, started_at, created_at
                )
                VALUES (?, ?, ?, ?, 'processing', ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    website_id,
                    plan_id,
                    TaskType(task_type).value,
                    model,
                    temperature,
                    prompt,
                    started,
                    started,
                ),
            )
            self.conn.commit()
            return task_id

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to claim keyword plan: {e}") from e

    @_serialized
    def resolve_success(
        self,
        plan_id: str,
        task_id: str,
        article: Article,
        tokens_used: int,
        completed_at: datetime,
    ) -> bool:
        """Write the article and close plan and task as successful, in one commit.

        Returns:
            True if committed, False if the plan was no longer processing
            (nothing is written in that case)

        Raises:
            SlugConflictError: If article.slug is already taken (nothing written)
            PersistenceError: If database operation fails
        """
        completed = to_db_time(completed_at)
        try:
            self._begin_immediate()
            self.conn.execute(
                """
                INSERT INTO articles (
                    id, title, slug, content, excerpt, category_id, status,
                    seo_title, seo_description, seo_keywords, published_at,
                    view_count, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    article.id,
                    article.title,
                    article.slug,
                    article.content,
                    article.excerpt,
                    article.category_id,
                    article.status.value,
                    article.seo_title,
                    article.seo_description,
                    article.seo_keywords,
                    to_db_time(article.published_at),
                    article.view_count,
                    completed,
                    completed,
                ),
            )

            cursor = self.conn.execute(
                """
                UPDATE keyword_plans
                SET status = 'generated', article_id = ?, generated_at = ?,
                    failure_reason = NULL, updated_at = ?
                WHERE id = ? AND status = 'processing'
                """,
                (article.id, completed, completed, plan_id),
            )
            if cursor.rowcount == 0:
                self.conn.rollback()
                return False

            self.conn.execute(
                """
                UPDATE generation_tasks
                SET status = 'completed', article_id = ?, tokens_used = ?,
                    error_message = NULL, completed_at = ?
                WHERE id = ? AND status = 'processing'
                """,
                (article.id, tokens_used or 0, completed, task_id),
            )
            self.conn.commit()
            return True

        except sqlite3.IntegrityError as e:
            self._rollback()
            if "articles.slug" in str(e):
                raise SlugConflictError(article.slug) from e
            raise PersistenceError(f"Failed to store generated article: {e}") from e
        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to store generated article: {e}") from e

    @_serialized
    def resolve_failure(
        self, plan_id: str, task_id: str, reason: str, completed_at: datetime
    ) -> bool:
        """Close plan and task as failed with a human-readable reason, in one commit.

        Returns:
            True if committed, False if the plan was no longer processing

        Raises:
            PersistenceError: If database operation fails
        """
        completed = to_db_time(completed_at)
        reason = reason or "Unknown error"
        try:
            self._begin_immediate()
            cursor = self.conn.execute(
                """
                UPDATE keyword_plans
                SET status = 'failed', failure_reason = ?, updated_at = ?
                WHERE id = ? AND status = 'processing'
                """,
                (reason, completed, plan_id),
            )
            if cursor.rowcount == 0:
                self.conn.rollback()
                return False

            self.conn.execute(
                """
                UPDATE generation_tasks
                SET status = 'failed', error_message = ?, tokens_used = COALESCE(tokens_used, 0),
                    completed_at = ?
                WHERE id = ? AND status = 'processing'
                """,
                (reason, completed, task_id),
            )
            self.conn.commit()
            return True

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to record generation failure: {e}") from e

    @_serialized
    def release_stale_claims(self, older_than: datetime, now: datetime) -> int:
        """Fail keyword plans stuck in processing since before older_than.

        A plan is stale when its open task started before the cutoff, or
        when it has no open task and was last touched before the cutoff
        (the process died between claim and resolve). Plans and their open
        tasks are failed together in one commit; nothing goes back to
        pending.

        Returns:
            Number of keyword plans released
        """
        cutoff = to_db_time(older_than)
        completed = to_db_time(now)
        try:
            self._begin_immediate()
            cursor = self.conn.execute(
                """
                SELECT kp.id AS plan_id, gt.id AS task_id
                FROM keyword_plans kp
                LEFT JOIN generation_tasks gt
                  ON gt.keyword_plan_id = kp.id AND gt.status = 'processing'
                WHERE kp.status = 'processing'
                  AND ((gt.id IS NOT NULL AND gt.started_at < ?)
                       OR (gt.id IS NULL AND kp.updated_at < ?))
                """,
                (cutoff, cutoff),
            )
            rows = cursor.fetchall()

            plan_ids = {row["plan_id"] for row in rows}
            for plan_id in plan_ids:
                self.conn.execute(
                    """
                    UPDATE keyword_plans
                    SET status = 'failed', failure_reason = ?, updated_at = ?
                    WHERE id = ? AND status = 'processing'
                    """,
                    (STALE_CLAIM_REASON, completed, plan_id),
                )
            for row in rows:
                if row["task_id"]:
                    self.conn.execute(
                        """
                        UPDATE generation_tasks
                        SET status = 'failed', error_message = ?,
                            tokens_used = COALESCE(tokens_used, 0), completed_at = ?
                        WHERE id = ? AND status = 'processing'
                        """,
                        (STALE_CLAIM_REASON, completed, row["task_id"]),
                    )
            self.conn.commit()
            return len(plan_ids)

        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Failed to release stale claims: {e}") from e

    # ------------------------------------------------------------------
    # Reads for the admin layer
    # ------------------------------------------------------------------

    def get_generation_task(self, task_id: str) -> Optional[GenerationTask]:
        try:
            cursor = self.conn.execute(
                "SELECT * FROM generation_tasks WHERE id = ?", (task_id,)
            )
            row = cursor.fetchone()
            return GenerationTask.from_row(row) if row else None

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get generation task: {e}") from e

    def get_tasks_for_keyword_plan(self, plan_id: str) -> List[GenerationTask]:
        try:
            cursor = self.conn.execute(
                """
                SELECT * FROM generation_tasks
                WHERE keyword_plan_id = ?
                ORDER BY created_at ASC
                """,
                (plan_id,),
            )
            return [GenerationTask.from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get tasks for keyword plan: {e}") from e

    def list_generation_tasks(
        self,
        website_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[GenerationTask]:
        """List generation tasks, newest first, with optional filters."""
        conditions = []
        params: List[Any] = []
        if website_id:
            conditions.append("website_id = ?")
            params.append(website_id)
        if status:
            conditions.append("status = ?")
            params.append(status)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])

        try:
            cursor = self.conn.execute(
                f"""
                SELECT * FROM generation_tasks
                {where}
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                params,
            )
            return [GenerationTask.from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list generation tasks: {e}") from e

    def get_article(self, article_id: str) -> Optional[Article]:
        try:
            cursor = self.conn.execute(
                "SELECT * FROM articles WHERE id = ?", (article_id,)
            )
            row = cursor.fetchone()
            return Article.from_row(row) if row else None

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get article: {e}") from e

    def count_articles(self) -> int:
        try:
            return self.conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to count articles: {e}") from e

    def slug_exists(self, slug: str) -> bool:
        try:
            cursor = self.conn.execute(
                "SELECT 1 FROM articles WHERE slug = ? LIMIT 1", (slug,)
            )
            return cursor.fetchone() is not None

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to check article slug: {e}") from e

    def get_pipeline_counts(self) -> Dict[str, Dict[str, int]]:
        """Keyword plan and task counts per status, for health output."""
        try:
            plans = {status.value: 0 for status in KeywordStatus}
            for row in self.conn.execute(
                "SELECT status, COUNT(*) AS n FROM keyword_plans GROUP BY status"
            ):
                plans[row["status"]] = row["n"]

            tasks = {status.value: 0 for status in TaskStatus}
            for row in self.conn.execute(
                "SELECT status, COUNT(*) AS n FROM generation_tasks GROUP BY status"
            ):
                tasks[row["status"]] = row["n"]

            return {"keyword_plans": plans, "generation_tasks": tasks}

        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to get pipeline counts: {e}") from e
