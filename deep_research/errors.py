"""Error taxonomy for the research pipeline.

Only configuration failures, provider HTTP failures raised while drafting,
and unexpected exceptions escape to the run level. Parse failures and
search failures are absorbed at their call sites.
"""

import asyncio


class ResearchError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(ResearchError):
    """Missing or invalid API key / provider settings."""


class ProviderHttpError(ResearchError):
    """Non-2xx response from an HTTP-based model or search call."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider request failed ({status_code}): {body}")


class ParseError(ResearchError):
    """A model's structured output could not be decoded."""


class ResearchCancelled(ResearchError):
    """Raised at a cancellation checkpoint once the run has been cancelled."""

    def __init__(self, message: str = "Research was cancelled by the user."):
        super().__init__(message)


QUOTA_MESSAGE = (
    "The provider's rate limit or quota was exceeded. "
    "Wait a moment or check your plan, then retry."
)


def describe_error(exc: BaseException) -> str:
    """Human-readable message for the run-level error state."""
    if isinstance(exc, (ConfigurationError, ResearchCancelled)):
        return str(exc)
    if isinstance(exc, asyncio.TimeoutError):
        return "A provider call timed out. Check the network or raise REQUEST_TIMEOUT_SECONDS."

    message = str(exc) or exc.__class__.__name__
    lower = message.lower()
    status = getattr(exc, "status_code", None)

    if status == 429 or any(k in lower for k in ("429", "quota", "rate limit", "resource exhausted", "resource_exhausted")):
        return QUOTA_MESSAGE
    if status == 401 or "401" in lower or "unauthorized" in lower:
        return f"Invalid API key. Check the provider settings. ({message[:200]})"
    if status == 403 or "403" in lower:
        return f"Access denied. The API key may lack permissions for this model. ({message[:200]})"
    return message
