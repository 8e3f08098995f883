"""Provider catalog: descriptors, adapters, availability."""

from .models import (
    Capability,
    ProviderCategory,
    ProviderDescriptor,
    ProviderTier,
)
from .registry import CatalogEntry, ProviderCatalog

__all__ = [
    "Capability",
    "CatalogEntry",
    "ProviderCatalog",
    "ProviderCategory",
    "ProviderDescriptor",
    "ProviderTier",
]
