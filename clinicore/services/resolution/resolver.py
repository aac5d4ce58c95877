"""Concept code resolution.

Turns a code into a display record by trying, in order:

1. ``CONCEPT_DIMENSION`` (name, value type and unit)
2. ``CODE_LOOKUP`` (name plus optional ``LOOKUP_BLOB`` JSON with
   ``label``, ``color`` and ``icon``)
3. A label derived from the code itself
"""

import json
from enum import Enum

import asyncio
import typing as t
from collections.abc import Iterable
from pydantic import BaseModel, ConfigDict

from clinicore.depends import depends
from clinicore.logger import Logger as LoggerAdapter
from clinicore.services.repository import CodeLookupRepository, ConceptRepository, Row

from .cache import ResolutionCache
from .colors import DEFAULT_COLOR, ColorMapper

logger = depends.get_sync(LoggerAdapter)

FALLBACK_LABELS: dict[str, str] = {
    "A": "Active",
    "I": "Inactive",
    "D": "Discharged",
    "C": "Completed",
    "X": "Cancelled",
    "P": "Pending",
    "M": "Male",
    "F": "Female",
}


class ResolutionSource(str, Enum):
    CONCEPT = "concept"
    CODE_LOOKUP = "code_lookup"
    FALLBACK = "fallback"


class ResolvedConcept(BaseModel):
    code: str
    label: str
    color: str = DEFAULT_COLOR
    icon: str | None = None
    resolved: bool = False
    source: ResolutionSource = ResolutionSource.FALLBACK
    value_type: str | None = None
    unit: str | None = None

    model_config = ConfigDict(frozen=True)


def fallback_label(code: str | None) -> str:
    if not code:
        return "Unknown"
    return FALLBACK_LABELS.get(code, code)


def _parse_blob(blob: t.Any) -> dict[str, t.Any]:
    if not blob:
        return {}
    if isinstance(blob, dict):
        return blob
    try:
        data = json.loads(blob)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed LOOKUP_BLOB: {blob!r}")
        return {}
    return data if isinstance(data, dict) else {}


class ConceptResolver:
    """Resolves codes to display records through a shared cache.

    Database errors propagate to every caller waiting on the same code; the
    failed key is not cached, so the next call retries.
    """

    def __init__(
        self,
        concepts: ConceptRepository,
        lookups: CodeLookupRepository,
        cache: ResolutionCache | None = None,
        colors: ColorMapper | None = None,
    ) -> None:
        self.concepts = concepts
        self.lookups = lookups
        self.cache = cache or ResolutionCache()
        self.colors = colors or ColorMapper()

    @staticmethod
    def cache_key(
        code: str,
        context: str | None = None,
        table: str | None = None,
        column: str | None = None,
    ) -> str:
        return repr((code, context, table, column))

    async def resolve(
        self,
        code: str | None,
        context: str | None = None,
        table: str | None = None,
        column: str | None = None,
    ) -> ResolvedConcept:
        if not code:
            return ResolvedConcept(code="", label=fallback_label(code))

        async def compute() -> ResolvedConcept:
            return await self._resolve_uncached(code, context, table, column)

        return await self.cache.get_or_set(
            self.cache_key(code, context, table, column),
            compute,
            tags=(f"concept:{code}",),
        )

    async def resolve_batch(
        self,
        codes: Iterable[str],
        context: str | None = None,
        table: str | None = None,
        column: str | None = None,
    ) -> dict[str, ResolvedConcept]:
        """Resolve distinct non-empty codes concurrently, keyed by code."""
        unique = list(dict.fromkeys(code for code in codes if code))
        results = await asyncio.gather(
            *(self.resolve(code, context, table, column) for code in unique),
        )
        return dict(zip(unique, results, strict=True))

    def invalidate(self, code: str) -> int:
        return self.cache.invalidate_by_tags((f"concept:{code}",))

    async def _resolve_uncached(
        self,
        code: str,
        context: str | None,
        table: str | None,
        column: str | None,
    ) -> ResolvedConcept:
        concept = await self.concepts.find_by_id(code)
        if concept and concept.get("NAME_CHAR"):
            return self._from_concept(code, concept, context)

        lookup = await self.lookups.find_code(code, table, column)
        if lookup and lookup.get("NAME_CHAR"):
            return self._from_lookup(code, lookup, context)

        logger.debug(f"No database entry for code {code}, using fallback label")
        label = fallback_label(code)
        return ResolvedConcept(
            code=code,
            label=label,
            color=self.colors.determine_color(code, context),
        )

    def _from_concept(self, code: str, row: Row, context: str | None) -> ResolvedConcept:
        label = row["NAME_CHAR"]
        return ResolvedConcept(
            code=code,
            label=label,
            color=self.colors.determine_color(label, context),
            resolved=True,
            source=ResolutionSource.CONCEPT,
            value_type=row.get("VALTYPE_CD"),
            unit=row.get("UNIT_CD"),
        )

    def _from_lookup(self, code: str, row: Row, context: str | None) -> ResolvedConcept:
        blob = _parse_blob(row.get("LOOKUP_BLOB"))
        label = blob.get("label") or row["NAME_CHAR"]
        return ResolvedConcept(
            code=code,
            label=label,
            color=blob.get("color") or self.colors.determine_color(label, context),
            icon=blob.get("icon"),
            resolved=True,
            source=ResolutionSource.CODE_LOOKUP,
        )
