"""Error types for the generation pipeline.

Run-level errors (configuration, persistence) abort a generation cycle.
Generation errors are per keyword: they are recorded on the keyword plan and
its task, and the cycle moves on to the next candidate.
"""

from typing import Optional


class ContentHubError(Exception):
    """Base class for Content Hub daemon errors."""


class ConfigurationError(ContentHubError):
    """Missing or invalid configuration, e.g. no AI credentials."""


class PersistenceError(ContentHubError):
    """The state store failed mid-operation."""


class GenerationError(ContentHubError):
    """An AI generation attempt failed."""

    kind = "generation"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GenerationProviderError(GenerationError):
    """Network, auth, rate-limit or non-2xx error from the AI provider."""

    kind = "provider"


class GenerationTimeoutError(GenerationProviderError):
    """The AI provider did not answer within the configured timeout."""

    kind = "timeout"


class GenerationParseError(GenerationError):
    """The AI provider answered but the payload was unusable."""

    kind = "parse"

    def __init__(self, message: str, raw_payload: Optional[str] = None):
        super().__init__(message)
        self.raw_payload = raw_payload


class SlugConflictError(ContentHubError):
    """Another writer took the article slug between lookup and insert."""

    def __init__(self, slug: str):
        super().__init__(f"Article slug already taken: {slug}")
        self.slug = slug
