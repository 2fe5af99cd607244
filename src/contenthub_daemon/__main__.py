"""Main entry point for the Content Hub daemon - just wiring, no logic."""

import asyncio
import signal
import sys
from datetime import datetime

import typer
import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv
from rich.console import Console

from .config import Config, default_config_dir
from .database import init_db
from .defaults import ensure_config
from .errors import ConfigurationError
from .observability import get_logger
from .orchestrator import create_orchestrator
from .storage import Storage

# Load environment variables from ~/.config/contenthub/.env
dotenv_path = default_config_dir() / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

console = Console()
scheduler = None  # Global for signal handler


async def run_scheduler(config: Config, test_mode: bool = False) -> None:
    """Run the daemon with APScheduler for periodic generation.

    Args:
        config: Already loaded and validated configuration
        test_mode: Whether to run in test mode with 5 second intervals
    """
    global scheduler

    try:
        console.print("🔧 Initializing scheduler...")

        scheduler = AsyncIOScheduler()

        if test_mode:
            interval_trigger = IntervalTrigger(seconds=5)
            interval_msg = "5 seconds"
        else:
            interval_trigger = IntervalTrigger(minutes=config.interval_minutes)
            interval_msg = f"{config.interval_minutes} minutes"

        scheduler.add_job(
            func=run_generation_sync,
            args=(config,),
            trigger=interval_trigger,
            id="generate_articles",
            name="Generate articles for pending keywords",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
        )

        # Also run immediately on startup
        scheduler.add_job(
            func=run_generation_sync,
            args=(config,),
            trigger="date",
            id="initial_run",
            name="Initial generation on startup",
        )

        scheduler.add_job(
            func=run_observability_cleanup,
            trigger=IntervalTrigger(hours=24),
            id="observability_cleanup",
            name="Remove old observability logs",
            replace_existing=True,
            max_instances=1,
        )

        def signal_handler(sig, frame) -> None:
            console.print(
                "\n[yellow]Received shutdown signal, stopping scheduler...[/yellow]"
            )
            if scheduler and scheduler.running:
                scheduler.shutdown(wait=False)
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler.start()
        console.print(
            f"[green]✅ Scheduler started ({config.policy} policy) - will generate every {interval_msg}[/green]"
        )

        console.print(f"[yellow]🌐 Starting API server on port {config.api_port}...[/yellow]")
        from .api import app as api_app

        api_config = uvicorn.Config(
            api_app,
            host=config.api_host,
            port=config.api_port,
            log_level="warning",  # Reduce noise
            access_log=False,  # Disable access logs for cleaner output
        )
        api_server = uvicorn.Server(api_config)

        # Run API server in background
        asyncio.create_task(api_server.serve())
        console.print(
            f"[green]✅ API server running on http://{config.api_host}:{config.api_port}[/green]"
        )
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            await asyncio.Event().wait()
        except KeyboardInterrupt:
            pass

    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)
    finally:
        if scheduler and scheduler.running:
            scheduler.shutdown(wait=True)


def run_generation_sync(config: Config) -> None:
    """Synchronous wrapper to run one generation cycle for the scheduler.

    Each run opens its own Storage, so overlapping jobs on the scheduler's
    thread pool never share a sqlite connection.
    """
    console.print(
        f"\n[blue]⏰ Running scheduled generation at {datetime.now().strftime('%H:%M:%S')}[/blue]"
    )
    with Storage() as storage:
        orchestrator = create_orchestrator(config, storage, console=console)
        report = orchestrator.run_generation_cycle()
    if report.articles_generated > 0:
        console.print(
            f"[green]Completed: {report.articles_generated} article(s) generated[/green]\n"
        )
    elif report.success:
        console.print("[dim]Nothing generated this run[/dim]\n")


def run_observability_cleanup() -> None:
    removed = get_logger().cleanup_old_files()
    if removed:
        console.print(f"[dim]🧹 Removed {removed} old observability file(s)[/dim]")


app = typer.Typer()


def validate_llm_config(config: Config) -> None:
    """Validate LLM configuration at startup.

    Raises:
        SystemExit: If LLM configuration is invalid
    """
    console.print("🔌 Validating LLM configuration...")
    from .llm_validator import validate_llm_config

    try:
        console.print("🧪 Testing LLM connection...")
        validate_llm_config(config.llm_settings())

        console.print(
            f"[green]✅ LLM connection successful: {config.llm_provider} / {config.llm_model}[/green]"
        )
    except ConfigurationError as e:
        console.print(f"[bold red]❌ LLM configuration error: {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]❌ LLM connection failed: {e}[/bold red]")
        console.print(
            "[yellow]💡 Check your model name format and server availability[/yellow]"
        )
        sys.exit(1)


@app.command()
def main(
    once: bool = typer.Option(False, "--once", help="Run one generation cycle and exit"),
    test_mode: bool = typer.Option(
        False, "--test", help="Test mode with 5 second intervals"
    ),
    sweep_stale: bool = typer.Option(
        False,
        "--sweep-stale",
        help="Fail keyword plans stuck in processing and exit",
    ),
    init_config: bool = typer.Option(
        False, "--init-config", help="Create default config.toml and exit"
    ),
) -> None:
    """Main entry point for the Content Hub daemon."""
    if init_config:
        ensure_config()
        return

    try:
        ensure_config()

        console.print("📂 Loading configuration...")
        config = Config.from_file()

        init_db()
    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)

    if sweep_stale:
        with Storage() as storage:
            orchestrator = create_orchestrator(config, storage, console=console)
            released = orchestrator.sweep_stale_claims(config.stale_after_minutes)
        console.print(
            f"[green]✅ Released {released} stale keyword plan(s) "
            f"(older than {config.stale_after_minutes} minutes)[/green]"
        )
        return

    # Validate LLM configuration before any generation mode
    validate_llm_config(config)

    if once:
        console.print("[bold blue]Starting Content Hub daemon (--once mode)[/bold blue]")

        with Storage() as storage:
            orchestrator = create_orchestrator(config, storage, console=console)
            report = orchestrator.run_generation_cycle()

        if not report.success:
            sys.exit(1)
    else:
        mode = "test mode (5 second intervals)" if test_mode else "scheduler mode"
        console.print(f"[bold blue]Starting Content Hub daemon ({mode})[/bold blue]")

        from .locking import acquire_daemon_lock

        with acquire_daemon_lock():
            asyncio.run(run_scheduler(config, test_mode=test_mode))


if __name__ == "__main__":
    app()
