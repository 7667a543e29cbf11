"""Error handling framework for Reelhub.

Provides custom exception types and decorators for standardized error handling
across the application.
"""

import inspect
import logging
from functools import wraps

logger = logging.getLogger(__name__)


# Custom Exception Hierarchy
class ReelhubError(Exception):
    """Base exception for all Reelhub-specific errors."""

    code = "reelhub_error"
    status_code = 500


class InvalidIdentity(ReelhubError):
    """A content identity is malformed.

    Raised when a provider key, item id or album id falls outside
    ``[A-Za-z0-9_-]+`` or a video identity claims the reserved audiobook tag.
    """

    code = "invalid_identity"
    status_code = 400


class NoCandidatesFound(ReelhubError):
    """No provider offered a playable source for the request.

    Terminal for the current resolution; callers should suggest a new search.
    """

    code = "no_candidates_found"
    status_code = 404


class AllProbesFailed(ReelhubError):
    """Every candidate probe failed.

    Non-fatal: resolution falls back to the first candidate and reports this
    code as a warning.
    """

    code = "all_probes_failed"
    status_code = 200


class EmptyEpisodeList(ReelhubError):
    """A source that must be playable has no episodes."""

    code = "empty_episode_list"
    status_code = 422


class UpstreamError(ReelhubError):
    """An upstream provider or stream host failed.

    Absorbed locally by the aggregator and probe engine.
    """

    code = "upstream_error"
    status_code = 502


class StorageError(ReelhubError):
    """Progress store read or write failed."""

    code = "storage_error"
    status_code = 503


class ConfigurationError(ReelhubError):
    """Configuration validation failed.

    Raised when the source config file or a required setting is invalid or missing.
    """

    code = "configuration_error"
    status_code = 500


class InvalidTransition(ReelhubError):
    """A session operation was requested from a state that does not allow it."""

    code = "invalid_transition"
    status_code = 409


# Error Handling Decorator
def handle_errors(
    *,
    error_types: tuple[type[Exception], ...],
    default_message: str,
    log_level: str = "error",
    reraise: bool = True,
    wrap_as: type[ReelhubError] | None = None,
):
    """Decorator for standardized error handling.

    Args:
        error_types: Tuple of exception types to catch
        default_message: Message to log when error occurs
        log_level: Logging level (error, warning, info, debug)
        reraise: Whether to re-raise the exception after logging
        wrap_as: Optionally wrap the caught exception in a ReelhubError subclass

    Example:
        @handle_errors(
            error_types=(httpx.HTTPError,),
            default_message="Upstream fetch failed",
            wrap_as=UpstreamError
        )
        async def fetch():
            # ... operation ...
    """

    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except error_types as e:
                log_func = getattr(logger, log_level)
                log_func(
                    f"{default_message}: {e}",
                    exc_info=(log_level == "error"),
                )
                if wrap_as:
                    raise wrap_as(f"{default_message}: {e}") from e
                if reraise:
                    raise
                return None

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except error_types as e:
                log_func = getattr(logger, log_level)
                log_func(
                    f"{default_message}: {e}",
                    exc_info=(log_level == "error"),
                )
                if wrap_as:
                    raise wrap_as(f"{default_message}: {e}") from e
                if reraise:
                    raise
                return None

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


# Context Manager for Error Handling
class error_context:
    """Context manager for error handling in specific code blocks.

    Example:
        with error_context(
            error_types=(OSError, ValueError),
            default_message="Failed to read source config",
            wrap_as=ConfigurationError
        ):
            # ... code that might raise errors ...
    """

    def __init__(
        self,
        *,
        error_types: tuple[type[Exception], ...],
        default_message: str,
        log_level: str = "error",
        wrap_as: type[ReelhubError] | None = None,
    ):
        self.error_types = error_types
        self.default_message = default_message
        self.log_level = log_level
        self.wrap_as = wrap_as

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and issubclass(exc_type, self.error_types):
            log_func = getattr(logger, self.log_level)
            log_func(
                f"{self.default_message}: {exc_val}",
                exc_info=(self.log_level == "error"),
            )
            if self.wrap_as:
                raise self.wrap_as(f"{self.default_message}: {exc_val}") from exc_val
            return False  # Re-raise the original exception
        return False  # Don't suppress other exceptions
