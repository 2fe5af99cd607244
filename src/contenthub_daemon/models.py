"""Data models for the Content Hub daemon."""

import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class KeywordStatus(str, Enum):
    """Keyword plan lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    GENERATED = "generated"
    FAILED = "failed"


class TaskStatus(str, Enum):
    """Generation task lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(str, Enum):
    """What started a generation task."""

    AUTO = "auto"  # Scheduled cycle
    MANUAL = "manual"  # Admin trigger for a single plan


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage (sortable ISO-8601 text)."""
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class Website:
    """A publishing target with autonomous generation settings.

    Matches the websites table schema.
    """

    name: str
    domain: str
    description: Optional[str] = None
    url: Optional[str] = None
    default_language: str = "en"
    timezone: Optional[str] = None  # Informational; quota uses host wall-clock
    is_active: bool = True
    auto_generate_enabled: bool = False
    max_articles_per_day: int = 5
    created_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Website":
        return cls(
            id=row["id"],
            name=row["name"],
            domain=row["domain"],
            description=row["description"],
            url=row["url"],
            default_language=row["default_language"],
            timezone=row["timezone"],
            is_active=bool(row["is_active"]),
            auto_generate_enabled=bool(row["auto_generate_enabled"]),
            max_articles_per_day=row["max_articles_per_day"],
            created_at=from_db_time(row["created_at"]),
        )


@dataclass
class KeywordPlan:
    """One keyword scheduled for generation on one website.

    Priority runs from 1 (most urgent) to 5 (least urgent).
    """

    website_id: str
    keyword: str
    keyword_hash: str
    category_id: Optional[str] = None
    search_volume: Optional[int] = None
    difficulty: Optional[int] = None
    competition: Optional[str] = None
    priority: int = 3
    status: KeywordStatus = KeywordStatus.PENDING
    article_id: Optional[str] = None
    generated_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    import_source: str = "manual"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "KeywordPlan":
        return cls(
            id=row["id"],
            website_id=row["website_id"],
            category_id=row["category_id"],
            keyword=row["keyword"],
            keyword_hash=row["keyword_hash"],
            search_volume=row["search_volume"],
            difficulty=row["difficulty"],
            competition=row["competition"],
            priority=row["priority"],
            status=KeywordStatus(row["status"]),
            article_id=row["article_id"],
            generated_at=from_db_time(row["generated_at"]),
            failure_reason=row["failure_reason"],
            import_source=row["import_source"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )


@dataclass
class GenerationTask:
    """Audit record of one attempt to turn a keyword plan into an article."""

    website_id: str
    keyword_plan_id: Optional[str]
    type: TaskType = TaskType.AUTO
    status: TaskStatus = TaskStatus.PENDING
    model: Optional[str] = None
    temperature: Optional[float] = None
    prompt: Optional[str] = None
    tokens_used: Optional[int] = None
    article_id: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "GenerationTask":
        return cls(
            id=row["id"],
            website_id=row["website_id"],
            keyword_plan_id=row["keyword_plan_id"],
            type=TaskType(row["type"]),
            status=TaskStatus(row["status"]),
            model=row["model"],
            temperature=row["temperature"],
            prompt=row["prompt"],
            tokens_used=row["tokens_used"],
            article_id=row["article_id"],
            error_message=row["error_message"],
            started_at=from_db_time(row["started_at"]),
            completed_at=from_db_time(row["completed_at"]),
            created_at=from_db_time(row["created_at"]),
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary for API responses."""
        return {
            "id": self.id,
            "website_id": self.website_id,
            "keyword_plan_id": self.keyword_plan_id,
            "type": self.type.value,
            "status": self.status.value,
            "model": self.model,
            "tokens_used": self.tokens_used,
            "article_id": self.article_id,
            "error_message": self.error_message,
            "started_at": to_db_time(self.started_at),
            "completed_at": to_db_time(self.completed_at),
            "created_at": to_db_time(self.created_at),
        }


@dataclass
class Article:
    """Generated content artifact."""

    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    category_id: Optional[str] = None
    status: ArticleStatus = ArticleStatus.DRAFT
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_keywords: Optional[str] = None
    published_at: Optional[datetime] = None
    view_count: int = 0
    created_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Article":
        return cls(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            content=row["content"],
            excerpt=row["excerpt"],
            category_id=row["category_id"],
            status=ArticleStatus(row["status"]),
            seo_title=row["seo_title"],
            seo_description=row["seo_description"],
            seo_keywords=row["seo_keywords"],
            published_at=from_db_time(row["published_at"]),
            view_count=row["view_count"],
            created_at=from_db_time(row["created_at"]),
        )
