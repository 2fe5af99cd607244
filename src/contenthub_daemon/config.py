"""Configuration loading from TOML."""

import tomllib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .generator import LLMSettings
from .scheduling import POLICY_NAMES


def default_config_dir() -> Path:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(xdg_config_home) / "contenthub"


@dataclass
class Config:
    """Configuration dataclass with validation.

    Loads from ~/.config/contenthub/config.toml - config file is required.
    Provides validation for configuration values.
    """

    # Scheduler settings
    interval_minutes: int
    policy: str  # exhaustive or rotation
    rotation_slot_minutes: int
    stale_after_minutes: int

    # LLM settings
    llm_provider: str  # openrouter, openai, anthropic, ollama
    llm_model: str
    llm_api_key: str

    # API settings
    api_key: str
    api_host: str

    # Optional fields with defaults must come last
    llm_api_base: Optional[str] = None  # For Ollama and custom endpoints
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4000
    llm_timeout_seconds: int = 120
    api_port: int = 8990

    def llm_settings(self) -> LLMSettings:
        """Settings handed to the article generator."""
        return LLMSettings(
            provider=self.llm_provider,
            model=self.llm_model,
            api_key=self.llm_api_key,
            api_base=self.llm_api_base,
            temperature=self.llm_temperature,
            max_tokens=self.llm_max_tokens,
            timeout_seconds=self.llm_timeout_seconds,
        )

    def validate(self) -> None:
        """Validate configuration values.

        Missing LLM credentials are not checked here; the generator reports
        them when a run actually needs the provider.

        Raises:
            ValueError: If any configuration values are invalid.
        """
        if not self.api_key:
            raise ValueError(
                "API key not configured. Add [api] section to config.toml with key='your-random-key'"
            )

        if self.interval_minutes < 1:
            raise ValueError(
                f"interval_minutes must be at least 1 minute, got {self.interval_minutes}"
            )

        if self.policy not in POLICY_NAMES:
            raise ValueError(
                f"policy must be one of {', '.join(POLICY_NAMES)}, got '{self.policy}'"
            )

        if not 1 <= self.rotation_slot_minutes <= 60:
            raise ValueError(
                f"rotation_slot_minutes must be between 1 and 60, got {self.rotation_slot_minutes}"
            )

        if self.stale_after_minutes < 1:
            raise ValueError(
                f"stale_after_minutes must be at least 1 minute, got {self.stale_after_minutes}"
            )

        if not 0 <= self.llm_temperature <= 2:
            raise ValueError(
                f"temperature must be between 0 and 2, got {self.llm_temperature}"
            )

        if self.llm_max_tokens < 1:
            raise ValueError(f"max_tokens must be at least 1, got {self.llm_max_tokens}")

        if self.llm_timeout_seconds < 1:
            raise ValueError(
                f"timeout_seconds must be at least 1 second, got {self.llm_timeout_seconds}"
            )

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOML file.

        Args:
            config_path: Optional path to config file.
                        Defaults to $XDG_CONFIG_HOME/contenthub/config.toml
                        (or ~/.config/contenthub/config.toml)

        Returns:
            Config instance with loaded values.
        """
        if config_path is None:
            config_path = default_config_dir() / "config.toml"

        # Load TOML config - required to exist
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Run 'contenthub-daemon --init-config' to create default configuration, "
                f"or create config.toml manually."
            )

        try:
            with open(config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except Exception as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

        scheduler = config_dict.get("scheduler", {})
        llm = config_dict.get("llm", {})
        api = config_dict.get("api", {})

        def expand_env_var(value: str) -> str:
            if value.startswith("env:"):
                env_var = value[4:]
                return os.environ.get(env_var, value)
            return value

        llm_api_key = expand_env_var(llm.get("api_key", "env:OPENROUTER_API_KEY"))
        llm_api_base = llm.get("api_base")
        if llm_api_base:
            llm_api_base = expand_env_var(llm_api_base)

        try:
            config = cls(
                interval_minutes=scheduler["interval_minutes"],
                policy=scheduler.get("policy", "exhaustive"),
                rotation_slot_minutes=scheduler.get("rotation_slot_minutes", 30),
                stale_after_minutes=scheduler.get("stale_after_minutes", 120),
                llm_provider=llm["provider"],
                llm_model=llm["model"],
                llm_api_key=llm_api_key,
                llm_api_base=llm_api_base,
                llm_temperature=llm.get("temperature", 0.7),
                llm_max_tokens=llm.get("max_tokens", 4000),
                llm_timeout_seconds=llm.get("timeout_seconds", 120),
                api_key=api.get("key"),  # No default - must be explicitly set
                api_host=api.get(
                    "host", "127.0.0.1"
                ),  # Default to localhost for security
                api_port=api.get("port", 8990),
            )
        except KeyError as e:
            raise ValueError(f"Missing required config field: {e}")

        config.validate()

        return config
