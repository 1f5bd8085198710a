from typing import Any
from pydantic import ValidationError


class GeosynthError(Exception):
    """Root of the errors raised by this package."""


class DataValidationError(GeosynthError):
    """Raw input (extraction, interest zone, boundary) that does not fit its model."""

    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        super().__init__(f"Invalid {source} input: {len(errors)} problem(s)")

    def summary(self, limit: int = 5) -> str:
        """One line per problem, at most `limit` lines plus a remainder count."""
        shown = [
            f"- {'.'.join(str(p) for p in err.get('loc', ())) or '<root>'}: {err.get('msg')}"
            for err in self.errors[:limit]
        ]
        hidden = len(self.errors) - limit
        if hidden > 0:
            shown.append(f"... ({hidden} more)")
        return "\n".join(shown)


class ProviderError(GeosynthError):
    """Base class for failures talking to an external geocoding provider."""


class ProviderUnavailableError(ProviderError):
    """Network error, timeout or non-success HTTP status from a provider endpoint."""

    def __init__(self, endpoint: str, http_status: int | None = None, body_snippet: str = "", reason: str = ""):
        self.endpoint = endpoint
        self.http_status = http_status
        self.body_snippet = body_snippet
        self.reason = reason
        status = f"HTTP {http_status}" if http_status is not None else "no response"
        super().__init__(f"{endpoint}: {status} {reason}".strip())
