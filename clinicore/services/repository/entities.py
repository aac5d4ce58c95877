"""Repositories for the clinical schema tables."""

import typing as t

from ._base import QueryOptions, Row, SortDirection
from .sql import SqlRepository

_AUDIT = ("UPDATE_DATE", "IMPORT_DATE", "SOURCESYSTEM_CD", "UPLOAD_ID")


class PatientRepository(SqlRepository[int]):
    table_name = "PATIENT_DIMENSION"
    primary_key = "PATIENT_NUM"
    fields = (
        "PATIENT_CD",
        "VITAL_STATUS_CD",
        "BIRTH_DATE",
        "DEATH_DATE",
        "SEX_CD",
        "AGE_IN_YEARS",
        "LANGUAGE_CD",
        "RACE_CD",
        "MARITAL_STATUS_CD",
        "RELIGION_CD",
        "STATECITYZIP_PATH",
        "PATIENT_BLOB",
        *_AUDIT,
    )

    async def find_by_patient_code(self, patient_code: str) -> Row | None:
        return await self.find_one_by_criteria({"PATIENT_CD": patient_code})

    async def find_by_age_range(self, min_age: int, max_age: int) -> list[Row]:
        """Patients aged ``min_age`` through ``max_age`` inclusive."""
        return await self.find_by_criteria(
            {"AGE_IN_YEARS": {"operator": "BETWEEN", "value": [min_age, max_age]}},
            QueryOptions(order_by="AGE_IN_YEARS"),
        )

    async def find_by_vital_status(self, vital_status: str) -> list[Row]:
        return await self.find_by_criteria({"VITAL_STATUS_CD": vital_status})


class VisitRepository(SqlRepository[int]):
    table_name = "VISIT_DIMENSION"
    primary_key = "ENCOUNTER_NUM"
    fields = (
        "PATIENT_NUM",
        "ACTIVE_STATUS_CD",
        "START_DATE",
        "END_DATE",
        "INOUT_CD",
        "LOCATION_CD",
        "VISIT_BLOB",
        *_AUDIT,
    )

    async def find_by_patient(self, patient_num: int) -> list[Row]:
        """Visits of one patient, most recent first."""
        return await self.find_by_criteria(
            {"PATIENT_NUM": patient_num},
            QueryOptions(order_by="START_DATE", order_direction=SortDirection.DESC),
        )


class ObservationRepository(SqlRepository[int]):
    table_name = "OBSERVATION_FACT"
    primary_key = "OBSERVATION_ID"
    fields = (
        "ENCOUNTER_NUM",
        "PATIENT_NUM",
        "CATEGORY_CHAR",
        "CONCEPT_CD",
        "PROVIDER_ID",
        "START_DATE",
        "END_DATE",
        "INSTANCE_NUM",
        "VALTYPE_CD",
        "TVAL_CHAR",
        "NVAL_NUM",
        "VALUEFLAG_CD",
        "UNIT_CD",
        "LOCATION_CD",
        "OBSERVATION_BLOB",
        *_AUDIT,
    )

    async def find_by_patient(self, patient_num: int) -> list[Row]:
        return await self.find_by_criteria(
            {"PATIENT_NUM": patient_num},
            QueryOptions(order_by="START_DATE", order_direction=SortDirection.DESC),
        )

    async def find_by_encounter(self, encounter_num: int) -> list[Row]:
        return await self.find_by_criteria({"ENCOUNTER_NUM": encounter_num})

    async def find_by_category(self, category: str) -> list[Row]:
        return await self.find_by_criteria({"CATEGORY_CHAR": category})

    async def find_by_numeric_range(self, low: float, high: float) -> list[Row]:
        return await self.find_by_criteria(
            {"NVAL_NUM": {"operator": "BETWEEN", "value": [low, high]}},
        )


class ConceptRepository(SqlRepository[str]):
    table_name = "CONCEPT_DIMENSION"
    primary_key = "CONCEPT_CD"
    fields = (
        "CONCEPT_PATH",
        "NAME_CHAR",
        "CONCEPT_BLOB",
        "VALTYPE_CD",
        "UNIT_CD",
        "CATEGORY_CHAR",
        "RELATED_CONCEPT",
        *_AUDIT,
    )

    async def search_by_name(self, term: str, limit: int | None = None) -> list[Row]:
        """Concepts whose name contains ``term``, alphabetically."""
        return await self.find_by_criteria(
            {"NAME_CHAR": {"operator": "LIKE", "value": f"%{term}%"}},
            QueryOptions(order_by="NAME_CHAR", limit=limit),
        )

    async def find_by_category(self, category: str) -> list[Row]:
        return await self.find_by_criteria({"CATEGORY_CHAR": category})


class NoteRepository(SqlRepository[int]):
    table_name = "NOTE_FACT"
    primary_key = "NOTE_ID"
    fields = (
        "CATEGORY_CHAR",
        "NAME_CHAR",
        "NOTE_BLOB",
        "NOTE_TEXT",
        "PATIENT_NUM",
        "ENCOUNTER_NUM",
        *_AUDIT,
    )

    async def find_by_patient(self, patient_num: int) -> list[Row]:
        return await self.find_by_criteria({"PATIENT_NUM": patient_num})

    async def find_by_category(self, category: str) -> list[Row]:
        return await self.find_by_criteria({"CATEGORY_CHAR": category})


class CodeLookupRepository(SqlRepository[int]):
    table_name = "CODE_LOOKUP"
    primary_key = "CODE_LOOKUP_ID"
    fields = (
        "TABLE_CD",
        "COLUMN_CD",
        "CODE_CD",
        "NAME_CHAR",
        "LOOKUP_BLOB",
        *_AUDIT,
    )

    async def find_code(
        self,
        code: str,
        table: str | None = None,
        column: str | None = None,
    ) -> Row | None:
        """First lookup row for ``code``, optionally narrowed to a table column."""
        criteria: dict[str, t.Any] = {"CODE_CD": code, "TABLE_CD": table, "COLUMN_CD": column}
        return await self.find_one_by_criteria(criteria)

    async def find_by_column(self, table: str, column: str) -> list[Row]:
        return await self.find_by_criteria(
            {"TABLE_CD": table, "COLUMN_CD": column},
            QueryOptions(order_by="CODE_CD"),
        )
