"""Generation orchestration logic, separated from entry point for testability."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console

from .circuit_breaker import CircuitBreaker, get_circuit_breaker
from .errors import (
    ConfigurationError,
    GenerationError,
    PersistenceError,
    SlugConflictError,
)
from .generator import ArticleGenerator, GenerationRequest
from .models import Article, ArticleStatus, KeywordPlan, TaskType, Website, to_db_time
from .observability import log as obs_log
from .quota import QuotaTracker
from .scheduling import SchedulingPolicy, create_policy
from .selector import KeywordSelector
from .storage import Storage
from .text import extract_excerpt, slugify

logger = logging.getLogger(__name__)

QUOTA_EXHAUSTED = "quota_exhausted"
NO_PENDING_KEYWORDS = "no_pending_keywords"
PROVIDER_UNAVAILABLE = "provider_unavailable"

SLUG_ATTEMPTS = 3


class KeywordOutcome(str, Enum):
    """What happened to one candidate keyword plan."""

    GENERATED = "generated"
    FAILED = "failed"
    CLAIM_LOST = "claim_lost"  # Another run claimed it first
    DEFERRED = "deferred"  # Left pending, provider circuit open


@dataclass
class WebsiteOutcome:
    website_id: str
    website_name: str
    remaining_budget: int = 0
    candidates: int = 0
    generated: int = 0
    failed: int = 0
    claim_lost: int = 0
    deferred: int = 0
    skipped_reason: Optional[str] = None

    def record(self, outcome: KeywordOutcome) -> None:
        if outcome == KeywordOutcome.GENERATED:
            self.generated += 1
        elif outcome == KeywordOutcome.FAILED:
            self.failed += 1
        elif outcome == KeywordOutcome.CLAIM_LOST:
            self.claim_lost += 1
        elif outcome == KeywordOutcome.DEFERRED:
            self.deferred += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "website_id": self.website_id,
            "website_name": self.website_name,
            "remaining_budget": self.remaining_budget,
            "candidates": self.candidates,
            "generated": self.generated,
            "failed": self.failed,
            "claim_lost": self.claim_lost,
            "deferred": self.deferred,
            "skipped_reason": self.skipped_reason,
        }


@dataclass
class RunReport:
    """Summary of one generation cycle."""

    policy: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    eligible_websites: int = 0
    websites: List[WebsiteOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def websites_considered(self) -> int:
        return len(self.websites)

    @property
    def articles_generated(self) -> int:
        return sum(w.generated for w in self.websites)

    @property
    def keywords_failed(self) -> int:
        return sum(w.failed for w in self.websites)

    @property
    def keywords_processed(self) -> int:
        """Keywords that reached a terminal state in this run."""
        return self.articles_generated + self.keywords_failed

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "policy": self.policy,
            "started_at": to_db_time(self.started_at),
            "finished_at": to_db_time(self.finished_at),
            "eligible_websites": self.eligible_websites,
            "processed": self.keywords_processed,
            "generated": self.articles_generated,
            "failed": self.keywords_failed,
            "websites": [w.to_dict() for w in self.websites],
            "error": self.error,
        }


class GenerationOrchestrator:
    """Runs the select-claim-generate-store pipeline with injected dependencies."""

    def __init__(
        self,
        storage: Storage,
        generator: ArticleGenerator,
        policy: SchedulingPolicy,
        quota: Optional[QuotaTracker] = None,
        selector: Optional[KeywordSelector] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        console: Optional[Console] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize orchestrator with dependencies.

        Args:
            storage: Storage instance for database operations
            generator: AI client that writes articles
            policy: Scheduling policy chosen from config
            quota: Daily budget tracker (defaults to one over storage)
            selector: Keyword selector (defaults to one over storage)
            circuit_breaker: Provider circuit breaker (defaults to the global one)
            console: Optional Rich console for output
            clock: Source of "now" for timestamps
        """
        self.storage = storage
        self.generator = generator
        self.policy = policy
        self.quota = quota or QuotaTracker(storage)
        self.selector = selector or KeywordSelector(storage)
        self.circuit_breaker = circuit_breaker or get_circuit_breaker()
        self.console = console or Console()
        self.clock = clock

    def run_generation_cycle(self, now: Optional[datetime] = None) -> RunReport:
        """Run one generation cycle.

        Never raises for run-level errors: configuration and persistence
        failures stop the run and are reported in RunReport.error.
        """
        now = now or self.clock()
        report = RunReport(policy=self.policy.name, started_at=now)

        try:
            eligible = self.storage.get_eligible_websites()
            report.eligible_websites = len(eligible)

            if not eligible:
                self.console.print(
                    "[yellow]No websites with auto generation enabled.[/yellow]"
                )
                return self._finish(report)

            obs_log(
                "generation.cycle.start",
                policy=self.policy.name,
                eligible_websites=len(eligible),
            )

            self.generator.check_configuration()

            selected = self.policy.select_websites(eligible, now)
            self.console.print(
                f"🗓️  {self.policy.name} policy: {len(selected)} of {len(eligible)} website(s) on duty"
            )

            for website_num, website in enumerate(selected, 1):
                self.console.print(
                    f"\n[bold cyan]Website {website_num}/{len(selected)}: {website.name} ({website.domain})[/bold cyan]"
                )
                # Appended up front so an aborted run still reports committed work
                outcome = WebsiteOutcome(website_id=website.id, website_name=website.name)
                report.websites.append(outcome)
                self.process_website(website, now, outcome)

        except ConfigurationError as e:
            report.error = f"Configuration error: {e}"
            logger.error(report.error)
            self.console.print(f"[red]{report.error}[/red]")
        except PersistenceError as e:
            report.error = f"Persistence error: {e}"
            logger.error(report.error)
            self.console.print(f"[red]{report.error}[/red]")

        return self._finish(report)

    def process_website(
        self,
        website: Website,
        now: datetime,
        outcome: Optional[WebsiteOutcome] = None,
    ) -> WebsiteOutcome:
        """Generate up to the policy's keyword limit for one website.

        Args:
            website: Website to generate for
            now: Reference time for the quota window
            outcome: Outcome to record into; counts recorded before a
                PersistenceError stay in it

        Raises:
            PersistenceError: If the state store fails
        """
        if outcome is None:
            outcome = WebsiteOutcome(website_id=website.id, website_name=website.name)

        outcome.remaining_budget = self.quota.remaining_budget(website, now)
        if outcome.remaining_budget <= 0:
            outcome.skipped_reason = QUOTA_EXHAUSTED
            self.console.print(
                f"  ⏸️  Daily limit reached ({website.max_articles_per_day}/day)"
            )
            return outcome

        limit = self.policy.keyword_limit(outcome.remaining_budget)
        candidates = self.selector.select_candidates(website, limit)
        outcome.candidates = len(candidates)

        if not candidates:
            outcome.skipped_reason = NO_PENDING_KEYWORDS
            self.console.print("  📭 No pending keywords")
            return outcome

        self.console.print(
            f"  📝 {len(candidates)} keyword(s) to generate, {outcome.remaining_budget} left today"
        )

        for i, plan in enumerate(candidates, 1):
            self.console.print(f"    ✍️  [{i}/{len(candidates)}] {plan.keyword}")
            result = self.process_keyword(website, plan)
            outcome.record(result)

        if outcome.deferred:
            outcome.skipped_reason = PROVIDER_UNAVAILABLE

        return outcome

    def process_keyword(
        self,
        website: Website,
        plan: KeywordPlan,
        task_type: TaskType = TaskType.AUTO,
    ) -> KeywordOutcome:
        """Claim, generate and resolve one keyword plan.

        Generation failures are recorded on the plan and its task and never
        raised, so the next candidate still runs.

        Raises:
            PersistenceError: If the state store fails
        """
        if not self.circuit_breaker.check_can_proceed():
            self.console.print("       [yellow]⏭️  Provider circuit open, left pending[/yellow]")
            self._log_keyword(website, plan, KeywordOutcome.DEFERRED, task_type)
            return KeywordOutcome.DEFERRED

        request = GenerationRequest.from_plan(plan, website)
        prompt = self.generator.build_prompt(request)

        task_id = self.storage.claim_keyword_plan(
            plan.id,
            website.id,
            started_at=self.clock(),
            model=self.generator.model,
            temperature=self.generator.temperature,
            prompt=prompt,
            task_type=task_type,
        )
        if task_id is None:
            self.console.print("       ⏭️  Already claimed by another run")
            self._log_keyword(website, plan, KeywordOutcome.CLAIM_LOST, task_type)
            return KeywordOutcome.CLAIM_LOST

        try:
            result = self.generator.generate(request)

            if not result.success:
                return self._fail(website, plan, task_id, result.error, task_type)

            self.circuit_breaker.record_success()

            generated = result.article
            completed_at = self.clock()
            article = Article(
                title=generated.title,
                slug=self._unique_slug(generated.title),
                content=generated.content,
                excerpt=extract_excerpt(generated.content),
                category_id=plan.category_id,
                status=ArticleStatus.PUBLISHED,
                seo_title=generated.seo_title,
                seo_description=generated.seo_description,
                seo_keywords=plan.keyword,
                published_at=completed_at,
            )

            stored = self._store_article(plan, task_id, article, generated.tokens_used)
            if not stored:
                # Plan left processing under us (stale sweep); nothing was written
                logger.warning(f"Keyword plan {plan.id} no longer processing, article dropped")
                self._log_keyword(website, plan, KeywordOutcome.CLAIM_LOST, task_type)
                return KeywordOutcome.CLAIM_LOST

            self.console.print(
                f"       [green]✅ {article.title[:60]} ({generated.tokens_used} tokens)[/green]"
            )
            self._log_keyword(
                website,
                plan,
                KeywordOutcome.GENERATED,
                task_type,
                article_id=article.id,
                tokens=generated.tokens_used,
            )
            return KeywordOutcome.GENERATED

        except PersistenceError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error generating '{plan.keyword}'")
            self.storage.resolve_failure(plan.id, task_id, str(e), self.clock())
            self.console.print(f"       [red]❌ {e}[/red]")
            self._log_keyword(
                website, plan, KeywordOutcome.FAILED, task_type, error=str(e)
            )
            return KeywordOutcome.FAILED

    def generate_for_keyword_plan(self, plan_id: str) -> KeywordOutcome:
        """Manually generate one keyword plan, outside any schedule.

        Ignores the scheduling policy and the daily quota but still claims
        atomically, so it cannot double-generate against a scheduled run.

        Raises:
            LookupError: If the plan or its website does not exist
            ConfigurationError: If the AI provider is not configured
            PersistenceError: If the state store fails
        """
        plan = self.storage.get_keyword_plan(plan_id)
        if plan is None:
            raise LookupError(f"Keyword plan not found: {plan_id}")

        website = self.storage.get_website(plan.website_id)
        if website is None:
            raise LookupError(f"Website not found: {plan.website_id}")

        self.generator.check_configuration()

        return self.process_keyword(website, plan, task_type=TaskType.MANUAL)

    def sweep_stale_claims(self, stale_after_minutes: int) -> int:
        """Fail keyword plans stuck in processing for longer than the threshold."""
        now = self.clock()
        released = self.storage.release_stale_claims(
            now - timedelta(minutes=stale_after_minutes), now
        )
        if released:
            logger.warning(f"Released {released} stale keyword plan claim(s)")
        return released

    def _fail(
        self,
        website: Website,
        plan: KeywordPlan,
        task_id: str,
        error: GenerationError,
        task_type: TaskType,
    ) -> KeywordOutcome:
        if error.kind == "parse":
            logger.warning(f"Unusable AI payload for '{plan.keyword}': {error.message}")
            logger.debug(f"Raw payload: {getattr(error, 'raw_payload', None)!r}")
        else:
            logger.error(f"AI provider failed for '{plan.keyword}': {error.message}")
            self.circuit_breaker.record_failure(error)

        self.storage.resolve_failure(plan.id, task_id, error.message, self.clock())
        self.console.print(f"       [red]❌ {error.message}[/red]")
        self._log_keyword(
            website,
            plan,
            KeywordOutcome.FAILED,
            task_type,
            error_kind=error.kind,
            error=error.message,
        )
        return KeywordOutcome.FAILED

    def _store_article(
        self, plan: KeywordPlan, task_id: str, article: Article, tokens_used: int
    ) -> bool:
        """Resolve the plan with its article, picking a fresh slug on conflict.

        Raises:
            SlugConflictError: If every attempt lost its slug to another writer
            PersistenceError: If the state store fails
        """
        for attempt in range(1, SLUG_ATTEMPTS + 1):
            try:
                return self.storage.resolve_success(
                    plan.id, task_id, article, tokens_used, article.published_at
                )
            except SlugConflictError:
                if attempt == SLUG_ATTEMPTS:
                    raise
                logger.warning(f"Slug '{article.slug}' taken concurrently, retrying")
                article.slug = self._unique_slug(article.title)
        return False

    def _unique_slug(self, title: str) -> str:
        base = slugify(title) or "article"
        slug = base
        suffix = 2
        while self.storage.slug_exists(slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def _log_keyword(
        self,
        website: Website,
        plan: KeywordPlan,
        outcome: KeywordOutcome,
        task_type: TaskType,
        **metadata: Any,
    ) -> None:
        obs_log(
            "generation.keyword",
            website_id=website.id,
            keyword_plan_id=plan.id,
            keyword=plan.keyword,
            outcome=outcome.value,
            task_type=TaskType(task_type).value,
            **metadata,
        )

    def _finish(self, report: RunReport) -> RunReport:
        report.finished_at = self.clock()

        if report.eligible_websites:
            obs_log(
                "generation.cycle.complete",
                policy=report.policy,
                websites=report.websites_considered,
                processed=report.keywords_processed,
                generated=report.articles_generated,
                failed=report.keywords_failed,
                error=report.error,
            )

        if report.success:
            self.console.print("\n[bold green]✅ Generation run complete[/bold green]")
        else:
            self.console.print("\n[bold red]❌ Generation run aborted[/bold red]")
        self.console.print(f"🌐 Websites considered: {report.websites_considered}")
        self.console.print(f"📝 Articles generated: {report.articles_generated}")
        self.console.print(f"⚠️  Keywords failed: {report.keywords_failed}")

        return report


def create_orchestrator(
    config, storage: Storage, console: Optional[Console] = None
) -> GenerationOrchestrator:
    """Build an orchestrator from a loaded Config."""
    return GenerationOrchestrator(
        storage=storage,
        generator=ArticleGenerator(config.llm_settings()),
        policy=create_policy(config.policy, config.rotation_slot_minutes),
        console=console,
    )
