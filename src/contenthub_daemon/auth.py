"""Authentication dependencies for FastAPI."""

from typing import Optional

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader

from .api_errors import AuthenticationError, ServerError
from .config import Config


api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_config() -> Config:
    """Dependency injection for Config instances.

    Loads configuration from standard location.
    Config is stateless so no cleanup needed.
    """
    try:
        return Config.from_file()
    except (FileNotFoundError, ValueError) as e:
        # If config loading fails, provide helpful error
        raise ServerError(f"Failed to load configuration: {e}")


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
    config: Config = Depends(get_config),
) -> str:
    """Verify the API key from request headers.

    Args:
        api_key: API key from X-API-Key header
        config: Loaded daemon configuration

    Returns:
        The validated API key

    Raises:
        AuthenticationError: 403 if API key is invalid or missing
    """
    if not api_key:
        raise AuthenticationError("Missing API key. Please provide X-API-Key header")

    if api_key != config.api_key:
        raise AuthenticationError("Invalid API key")

    return api_key
