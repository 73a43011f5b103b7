"""Scoped data projection for validated share grants.

Each allowed scope maps to exactly one typed section. The payload never
contains a section for a scope the grant does not authorize, whatever
the underlying stores would return.

Every record is re-checked before it is exposed:
  - its ``profile_id`` must equal the grant's owner profile, and
  - when the grant carries a resource filter, its ``id`` must be in it.

Per-scope caps when no filter is set:
  documents 10 most recent, lab results 20 most recent, vitals 30 most
  recent, medications active only, profile summary 10 recent vitals.

A resource filter names records explicitly, so every named record is
returned (newest first) and only the profile summary keeps its 10-vital
preview. Issuance bounds the filter size.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Union

from .errors import ShareError, StorageError
from .model import Scope, ShareGrant

if TYPE_CHECKING:
    from ..protocols import (
        DocumentStore,
        LabStore,
        MedicationStore,
        ProfileStore,
        VitalStore,
    )

DOCUMENT_LIMIT = 10
LAB_RESULT_LIMIT = 20
VITAL_LIMIT = 30
SUMMARY_VITAL_LIMIT = 10

# Profile fields a recipient may see; everything else stays private.
PROFILE_SUMMARY_FIELDS = (
    'id',
    'full_name',
    'date_of_birth',
    'gender',
    'blood_group',
    'allergies',
    'chronic_conditions',
)

Record = dict[str, Any]


# ── Sections ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DocumentsSection:
    scope: ClassVar[Scope] = Scope.DOCUMENTS
    documents: tuple[Record, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'documents': list(self.documents)}


@dataclass(frozen=True, slots=True)
class LabResultsSection:
    scope: ClassVar[Scope] = Scope.LAB_RESULTS
    lab_results: tuple[Record, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'lab_results': list(self.lab_results)}


@dataclass(frozen=True, slots=True)
class VitalsSection:
    scope: ClassVar[Scope] = Scope.VITALS
    vitals: tuple[Record, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'vitals': list(self.vitals)}


@dataclass(frozen=True, slots=True)
class MedicationsSection:
    scope: ClassVar[Scope] = Scope.MEDICATIONS
    medications: tuple[Record, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'medications': list(self.medications)}


@dataclass(frozen=True, slots=True)
class TrendSeries:
    vital_type: str
    points: tuple[Record, ...]
    latest: float | None = None
    minimum: float | None = None
    maximum: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'vital_type': self.vital_type,
            'points': list(self.points),
            'latest': self.latest,
            'min': self.minimum,
            'max': self.maximum,
        }


@dataclass(frozen=True, slots=True)
class TrendsSection:
    scope: ClassVar[Scope] = Scope.TRENDS
    series: tuple[TrendSeries, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'series': [s.to_dict() for s in self.series]}


@dataclass(frozen=True, slots=True)
class ProfileSummarySection:
    scope: ClassVar[Scope] = Scope.PROFILE_SUMMARY
    profile: Record | None = None
    recent_vitals: tuple[Record, ...] = ()
    active_medications: tuple[Record, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            'profile': self.profile,
            'recent_vitals': list(self.recent_vitals),
            'active_medications': list(self.active_medications),
        }


Section = Union[
    DocumentsSection,
    LabResultsSection,
    VitalsSection,
    MedicationsSection,
    TrendsSection,
    ProfileSummarySection,
]


@dataclass(frozen=True, slots=True)
class ScopedPayload:
    sections: tuple[Section, ...] = field(default_factory=tuple)

    @property
    def scopes(self) -> frozenset[Scope]:
        return frozenset(s.scope for s in self.sections)

    def section(self, scope: Scope) -> Section | None:
        for s in self.sections:
            if s.scope is scope:
                return s
        return None

    def to_dict(self) -> dict[str, Any]:
        return {s.scope.value: s.to_dict() for s in self.sections}


# ── Helpers ──────────────────────────────────────────────────────────


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_trends(vitals: Iterable[Record]) -> tuple[TrendSeries, ...]:
    """Group vitals per ``vital_type``, oldest first, with simple stats."""
    grouped: dict[str, list[Record]] = {}
    for row in vitals:
        grouped.setdefault(str(row.get('vital_type') or 'unknown'), []).append(row)

    series = []
    for vital_type in sorted(grouped):
        points = sorted(grouped[vital_type], key=lambda r: str(r.get('measured_at', '')))
        values = [v for v in (_numeric(p.get('value')) for p in points) if v is not None]
        series.append(TrendSeries(
            vital_type=vital_type,
            points=tuple(
                {k: p.get(k) for k in ('id', 'measured_at', 'value', 'systolic', 'diastolic', 'unit')}
                for p in points
            ),
            latest=values[-1] if values else None,
            minimum=min(values) if values else None,
            maximum=max(values) if values else None,
        ))
    return tuple(series)


# ── Projector ────────────────────────────────────────────────────────


class ScopedDataProjector:
    """Assembles exactly the data a grant authorizes."""

    def __init__(
        self,
        *,
        profiles: ProfileStore,
        documents: DocumentStore,
        labs: LabStore,
        vitals: VitalStore,
        medications: MedicationStore,
    ) -> None:
        self._profiles = profiles
        self._documents = documents
        self._labs = labs
        self._vitals = vitals
        self._medications = medications

    async def project(self, grant: ShareGrant) -> ScopedPayload:
        """Fetch one section per allowed scope.

        Raises:
            StorageError: A data store failed; nothing is returned.
        """
        builders = {
            Scope.DOCUMENTS: self._documents_section,
            Scope.LAB_RESULTS: self._lab_results_section,
            Scope.VITALS: self._vitals_section,
            Scope.MEDICATIONS: self._medications_section,
            Scope.TRENDS: self._trends_section,
            Scope.PROFILE_SUMMARY: self._profile_summary_section,
        }
        ordered = [s for s in Scope if s in grant.allowed_scopes]
        try:
            sections = await asyncio.gather(
                *(builders[scope](grant) for scope in ordered)
            )
        except ShareError:
            raise
        except Exception as exc:
            raise StorageError(f'projection failed: {type(exc).__name__}') from exc
        return ScopedPayload(sections=tuple(sections))

    # Filtering ---------------------------------------------------------

    @staticmethod
    def _authorized(grant: ShareGrant, rows: Iterable[Record]) -> tuple[Record, ...]:
        kept = []
        for row in rows:
            if row.get('profile_id') != grant.owner_profile_id:
                continue
            if grant.resource_filter is not None and row.get('id') not in grant.resource_filter:
                continue
            kept.append(row)
        return tuple(kept)

    async def _fetch(self, grant: ShareGrant, store, limit: int) -> tuple[Record, ...]:
        if grant.resource_filter is not None:
            return self._authorized(grant, await store.get_by_ids(sorted(grant.resource_filter)))
        rows = await store.by_profile(grant.owner_profile_id, limit)
        return self._authorized(grant, rows)[:limit]

    async def _recent_vitals(
        self, grant: ShareGrant, limit: int, *, preview: bool = False,
    ) -> tuple[Record, ...]:
        if grant.resource_filter is None:
            rows = await self._vitals.recent(grant.owner_profile_id, limit)
            return self._authorized(grant, rows)[:limit]
        rows = await self._vitals.get_by_ids(sorted(grant.resource_filter))
        rows = sorted(rows, key=lambda r: str(r.get('measured_at', '')), reverse=True)
        kept = self._authorized(grant, rows)
        return kept[:limit] if preview else kept

    # Sections ----------------------------------------------------------

    async def _documents_section(self, grant: ShareGrant) -> DocumentsSection:
        return DocumentsSection(documents=await self._fetch(grant, self._documents, DOCUMENT_LIMIT))

    async def _lab_results_section(self, grant: ShareGrant) -> LabResultsSection:
        return LabResultsSection(lab_results=await self._fetch(grant, self._labs, LAB_RESULT_LIMIT))

    async def _vitals_section(self, grant: ShareGrant) -> VitalsSection:
        return VitalsSection(vitals=await self._recent_vitals(grant, VITAL_LIMIT))

    async def _medications_section(self, grant: ShareGrant) -> MedicationsSection:
        rows = await self._medications.active(grant.owner_profile_id)
        return MedicationsSection(medications=self._authorized(grant, rows))

    async def _trends_section(self, grant: ShareGrant) -> TrendsSection:
        return TrendsSection(series=build_trends(await self._recent_vitals(grant, VITAL_LIMIT)))

    async def _profile_summary_section(self, grant: ShareGrant) -> ProfileSummarySection:
        profile = await self._profiles.get(grant.owner_profile_id)
        summary = None
        if profile is not None and profile.get('id') == grant.owner_profile_id:
            summary = {k: profile.get(k) for k in PROFILE_SUMMARY_FIELDS}
        meds = await self._medications.active(grant.owner_profile_id)
        return ProfileSummarySection(
            profile=summary,
            recent_vitals=await self._recent_vitals(grant, SUMMARY_VITAL_LIMIT, preview=True),
            active_medications=self._authorized(grant, meds),
        )
