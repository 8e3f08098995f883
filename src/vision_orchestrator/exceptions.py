"""Custom exception hierarchy for vision-orchestrator.

All vision-orchestrator exceptions inherit from VisionOrchestratorError,
allowing callers to catch broad or specific errors:

    try:
        result = await orchestrator.analyze_frame(image)
    except AllProvidersExhausted as e:
        print(f"Nobody could analyze the frame: {e}")
    except VisionOrchestratorError as e:
        print(f"vision-orchestrator error: {e}")

Provider errors are classified into four kinds that drive the retry policy:
auth (drop the credential), rate limit (quarantine the credential),
validation (give up on the service) and transient (back off and retry).
"""

from __future__ import annotations


class VisionOrchestratorError(Exception):
    """Base exception for all vision-orchestrator errors."""


class ProviderError(VisionOrchestratorError):
    """Raised when a vision provider call fails."""

    def __init__(self, message: str = "", *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ProviderAuthError(ProviderError):
    """Raised when provider authentication fails (invalid or revoked key)."""


class ProviderRateLimitError(ProviderError):
    """Raised when a provider rate-limits the request or the quota is spent."""

    def __init__(
        self,
        message: str = "",
        *,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status=status)
        self.retry_after = retry_after


class ProviderTransientError(ProviderError):
    """Raised for timeouts, network failures and 5xx answers."""


class ImageValidationError(ProviderError):
    """Raised when a provider rejects the image itself (size, format)."""


class NoCredentialAvailable(VisionOrchestratorError):
    """Raised when a service has no usable credential left."""

    def __init__(self, service: str) -> None:
        super().__init__(f"No usable credential for service '{service}'")
        self.service = service


class NoFreeProviderSucceeded(VisionOrchestratorError):
    """Raised when every zero-cost provider failed or none was eligible."""


class AllProvidersExhausted(VisionOrchestratorError):
    """Raised when no provider (free or paid) could analyze a frame."""


class ConfigError(VisionOrchestratorError):
    """Raised when configuration is invalid or missing."""


class PersistenceError(VisionOrchestratorError):
    """Raised when state cannot be written to the settings store."""
