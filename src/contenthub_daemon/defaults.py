"""Default configuration for the Content Hub daemon."""

import secrets
from pathlib import Path

from .config import default_config_dir


DEFAULT_CONFIG_TOML = """# Content Hub generation daemon configuration

[scheduler]
interval_minutes = 30  # minutes between generation runs
policy = "exhaustive"  # exhaustive (every website, full budget) | rotation (one website, one keyword)
rotation_slot_minutes = 30  # rotation only: minutes each website stays on duty within the hour
stale_after_minutes = 120  # --sweep-stale fails plans stuck in processing longer than this

[llm]
# Choose ONE provider configuration below:

# OpenRouter
provider = "openrouter"
model = "openrouter/anthropic/claude-3-haiku"
api_key = "env:OPENROUTER_API_KEY"
temperature = 0.7
max_tokens = 4000
timeout_seconds = 120  # per article

# OpenAI - replace above config with:
# provider = "openai"
# model = "gpt-4o-mini"
# api_key = "env:OPENAI_API_KEY"

# Ollama (local models) - replace above config with:
# provider = "ollama"
# model = "ollama/llama3"  # Must use ollama/ prefix
# api_base = "http://localhost:11434"  # REQUIRED for Ollama
# api_key = ""  # Not needed for Ollama

[api]
key = "{api_key}"  # API key for REST endpoints (auto-generated)
host = "127.0.0.1"  # API server host binding (127.0.0.1=localhost only, 0.0.0.0=all interfaces/LAN)
port = 8990
"""


def ensure_config(config_dir: Path | None = None) -> Path:
    """Create default configuration directory and config.toml if missing.

    Creates $XDG_CONFIG_HOME/contenthub/ (or ~/.config/contenthub/).

    Returns:
        Path to config.toml
    """
    config_dir = config_dir or default_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    config_file = config_dir / "config.toml"
    if not config_file.exists():
        api_key = f"contenthub-{secrets.token_hex(8)}"
        config_file.write_text(DEFAULT_CONFIG_TOML.format(api_key=api_key))
        print(f"Created {config_file}")
        print(f"Generated API key: {api_key}")
    else:
        print(f"Config already exists: {config_file}")

    return config_file


if __name__ == "__main__":
    ensure_config()
