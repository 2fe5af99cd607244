"""Database initialization for the Content Hub daemon."""

import os
import sqlite3
from pathlib import Path
from typing import Optional


def default_db_path() -> Path:
    """Return $XDG_DATA_HOME/contenthub/contenthub.db (or ~/.local/share/...)."""
    xdg_data_home = os.environ.get(
        "XDG_DATA_HOME", str(Path.home() / ".local" / "share")
    )
    return Path(xdg_data_home) / "contenthub" / "contenthub.db"


def init_db(db_path: Optional[Path] = None) -> Path:
    """Initialize the Content Hub database with schema.

    Creates the database at $XDG_DATA_HOME/contenthub/contenthub.db if it
    doesn't exist, and applies the schema from schema.sql.

    Args:
        db_path: Optional custom database path for testing.

    Returns:
        Path to the created/verified database

    Raises:
        sqlite3.Error: If database creation fails
    """
    if db_path is None:
        db_path = default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    schema_file = Path(__file__).parent / "schema.sql"
    if not schema_file.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    schema_sql = schema_file.read_text()

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(schema_sql)
        conn.commit()

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        created_tables = {row[0] for row in cursor.fetchall()}

        expected_tables = {
            "articles",
            "categories",
            "generation_tasks",
            "keyword_plans",
            "publish_logs",
            "websites",
        }
        if not expected_tables.issubset(created_tables):
            missing = expected_tables - created_tables
            raise sqlite3.Error(f"Failed to create tables: {missing}")

        return db_path

    except sqlite3.Error as e:
        conn.rollback()
        raise sqlite3.Error(f"Failed to initialize database: {e}")
    finally:
        conn.close()


def get_db_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Get a connection to the Content Hub database.

    Ensures WAL mode and other pragmas are set correctly.

    Args:
        db_path: Optional custom database path.

    Returns:
        SQLite connection with proper settings
    """
    if db_path is None:
        db_path = default_db_path()

    if not db_path.exists():
        raise FileNotFoundError(
            f"Database not found at {db_path}. Run init_db() first."
        )

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")

    return conn


if __name__ == "__main__":
    path = init_db()
    print(f"Database initialized at: {path}")
