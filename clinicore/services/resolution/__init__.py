"""Code-to-display resolution with a bounded, deduplicating cache."""

from .cache import CacheEntry, CacheStats, ResolutionCache, ResolutionCacheSettings
from .colors import (
    CATEGORY_COLORS,
    COLOR_MAPPINGS,
    SIMPLE_CODE_COLORS,
    ColorContext,
    ColorMapper,
    ColorPattern,
)
from .resolver import (
    ConceptResolver,
    ResolutionSource,
    ResolvedConcept,
    fallback_label,
)

__all__ = [
    "CATEGORY_COLORS",
    "COLOR_MAPPINGS",
    "SIMPLE_CODE_COLORS",
    "CacheEntry",
    "CacheStats",
    "ColorContext",
    "ColorMapper",
    "ColorPattern",
    "ConceptResolver",
    "ResolutionCache",
    "ResolutionCacheSettings",
    "ResolutionSource",
    "ResolvedConcept",
    "fallback_label",
]
