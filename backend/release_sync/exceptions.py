"""
Custom exception classes for the release sync service.

These exceptions are caught by global exception handlers in exception_handlers.py,
providing consistent error responses across all API endpoints. The sync
orchestrator uses `message` as the human-readable `last_sync_error` it persists.

Usage:
    from release_sync.exceptions import NotConfiguredError, RateLimitedError

    raise NotConfiguredError("repository")       # 400: "GitHub repository is not configured"
    raise RateLimitedError("GitHub API", reset)  # 429: "GitHub API rate limit exceeded"
"""

from datetime import datetime


class AppException(Exception):
    """
    Base exception class for application-level errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code to return
        error_code: Machine-readable error code for client handling
        retryable: Whether a later, independent attempt may succeed
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERR_{status_code}"
        super().__init__(message)


class NotFoundError(AppException):
    """
    Local resource not found (404).

    Usage:
        raise NotFoundError("Release")  # "Release not found"
    """

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
        )


class DuplicateError(AppException):
    """
    Duplicate or conflicting resource (409).

    Usage:
        raise DuplicateError("GitHub release link")  # "Duplicate GitHub release link"
    """

    def __init__(self, resource: str = "Resource", reason: str | None = None):
        message = f"Duplicate {resource}"
        if reason:
            message = f"Duplicate {resource}: {reason}"
        super().__init__(
            message=message,
            status_code=409,
            error_code="DUPLICATE",
        )


class ValidationError(AppException):
    """Validation error (400)."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
        )


class ConfigurationError(AppException):
    """
    Server-side credentials missing or invalid (500).

    Fatal: needs an operator to fix the deployment before any retry.

    Usage:
        raise ConfigurationError("GitHub App", "private key")
        # "GitHub App private key is not configured"
    """

    def __init__(
        self,
        config_name: str,
        config_type: str = "configuration",
        reason: str | None = None,
    ):
        message = f"{config_name} {config_type} is not configured"
        if reason:
            message = f"{config_name} {config_type} is invalid: {reason}"
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIGURATION_MISSING",
        )


class NotConfiguredError(AppException):
    """
    Organization has not finished setting up its GitHub connection (400).

    Usage:
        raise NotConfiguredError("repository")    # "GitHub repository is not configured"
        raise NotConfiguredError("installation")  # "GitHub installation is not configured"
    """

    def __init__(self, what: str = "connection"):
        super().__init__(
            message=f"GitHub {what} is not configured",
            status_code=400,
            error_code="NOT_CONFIGURED",
        )


class SyncInProgressError(AppException):
    """A sync for this organization is already running (409)."""

    retryable = True

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            message="A GitHub sync is already in progress",
            status_code=409,
            error_code="SYNC_IN_PROGRESS",
        )


class UpstreamAuthError(AppException):
    """
    GitHub rejected the installation token exchange (502).

    Usually means the app was uninstalled or its permissions were revoked;
    the user has to reconnect.
    """

    def __init__(self, upstream_status: int, body: str = ""):
        self.upstream_status = upstream_status
        self.body = body
        message = f"GitHub authentication failed (status {upstream_status})"
        if body:
            message = f"{message}: {body[:200]}"
        super().__init__(
            message=message,
            status_code=502,
            error_code="UPSTREAM_AUTH_ERROR",
        )


class GitHubNotFoundError(AppException):
    """GitHub returned 404 for a repository or resource."""

    def __init__(self, resource: str = "GitHub resource"):
        super().__init__(
            message=f"{resource} not found on GitHub",
            status_code=404,
            error_code="GITHUB_NOT_FOUND",
        )


class RateLimitedError(AppException):
    """
    GitHub rate limit exceeded (429).

    `reset_at` is the upstream reset time when GitHub reported one.
    """

    retryable = True

    def __init__(self, service: str = "GitHub API", reset_at: datetime | None = None):
        self.reset_at = reset_at
        message = f"{service} rate limit exceeded"
        if reset_at:
            message = f"{message}, resets at {reset_at.isoformat()}"
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMITED",
        )


class UpstreamError(AppException):
    """
    Any other non-2xx response from GitHub (502).

    Usage:
        raise UpstreamError("GitHub API", 500, "status 500")
    """

    retryable = True

    def __init__(self, service: str, upstream_status: int | None = None, reason: str | None = None):
        self.upstream_status = upstream_status
        message = f"{service} error"
        if reason:
            message = f"{service} error: {reason}"
        super().__init__(
            message=message,
            status_code=502,
            error_code="UPSTREAM_ERROR",
        )


class TransportError(AppException):
    """Network failure or timeout talking to GitHub (504)."""

    retryable = True

    def __init__(self, service: str, reason: str | None = None):
        message = f"{service} unreachable"
        if reason:
            message = f"{service} unreachable: {reason}"
        super().__init__(
            message=message,
            status_code=504,
            error_code="TRANSPORT_ERROR",
        )


class WebhookSignatureError(AppException):
    """Webhook body does not match its X-Hub-Signature-256 header (401)."""

    def __init__(self, reason: str = "invalid signature"):
        super().__init__(
            message=f"Webhook rejected: {reason}",
            status_code=401,
            error_code="WEBHOOK_SIGNATURE_INVALID",
        )
