"""Credential pool and credential models."""

from .models import Credential, CredentialStats, CredentialStatus, CredentialTier
from .pool import CredentialPool

__all__ = [
    "Credential",
    "CredentialPool",
    "CredentialStats",
    "CredentialStatus",
    "CredentialTier",
]
