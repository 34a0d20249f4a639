"""Error types raised by the upstream adapter and the scheduling engine.

Purpose:
- Provide typed exceptions for the failure modes of talking to panels and
  the router service.
- Expose HTTP-oriented context (URL, status code, error body) for diagnosis.

Usage:
- Catch ``UpstreamError`` for any panel-side failure and inspect
  ``status_code`` or ``details``.
- ``MissingCredentialField`` is a configuration error; it is raised before any
  network call is made.
- Batch runners catch every ``PanelHubError`` at the per-account boundary.
"""

from __future__ import annotations

from typing import Any, Optional


class PanelHubError(Exception):
    """Base error for all panelhub exceptions."""


class UpstreamError(PanelHubError):
    """Base error for panel/router HTTP failures.

    Args:
        message: Human-readable error description.
        url: The request URL, when known.
        status_code: Optional HTTP status code associated with the failure.
        details: Optional payload from the server (e.g., response text).
    """

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.details = details


class UpstreamUnavailable(UpstreamError):
    """Transport failure (DNS, connect, timeout) or an unexpected non-2xx status."""


class UpstreamAuthOrRouting(UpstreamError):
    """The panel answered with an HTML page where JSON was expected, or with 401/403.

    Usually means the credential expired and the panel redirected to its login
    page, or the base URL points at the panel's frontend instead of its API.
    """


class UpstreamShapeError(UpstreamError):
    """JSON was received but no known or heuristic field matched."""


class NoMatchingChannel(PanelHubError):
    """No router channel has a base URL equal to the account's base URL."""

    def __init__(self, base_url: str) -> None:
        super().__init__(f"No matching channel for base URL: {base_url}")
        self.base_url = base_url


class MissingCredentialField(PanelHubError):
    """An account lacks a field required by its auth mode."""

    def __init__(self, field: str, *, account_id: Optional[str] = None) -> None:
        suffix = f" (account {account_id})" if account_id else ""
        super().__init__(f"Account credential is missing required field '{field}'{suffix}")
        self.field = field
        self.account_id = account_id


class SchedulingError(PanelHubError):
    """Raised for schedule requests the scheduler cannot honour."""


class RetryExhausted(PanelHubError):
    """All attempts allowed by a ``RetryPolicy`` failed.

    Args:
        attempts: Number of attempts performed.
        last_error: The exception raised by the final attempt.
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
