"""Vision Orchestrator: routes screen frames across AI vision services."""

__version__ = "0.4.0"

from .exceptions import (
    AllProvidersExhausted,
    ConfigError,
    ImageValidationError,
    NoCredentialAvailable,
    NoFreeProviderSucceeded,
    PersistenceError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTransientError,
    VisionOrchestratorError,
)

__all__ = [
    "__version__",
    "VisionOrchestratorError",
    "ProviderError",
    "ProviderAuthError",
    "ProviderRateLimitError",
    "ProviderTransientError",
    "ImageValidationError",
    "NoCredentialAvailable",
    "NoFreeProviderSucceeded",
    "AllProvidersExhausted",
    "ConfigError",
    "PersistenceError",
]
