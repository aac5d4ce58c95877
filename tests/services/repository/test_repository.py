"""Tests for the SQL repositories against the clinical schema."""

import typing as t

import pytest

from clinicore.adapters.sql import Sql, StatementError
from clinicore.services.repository import (
    UNSET,
    CodeLookupRepository,
    ConceptRepository,
    EmptyEntityError,
    EntityNotFoundError,
    InvalidFieldError,
    NoFieldsToUpdateError,
    NoteRepository,
    ObservationRepository,
    PatientRepository,
    QueryOptions,
    RepositorySettings,
    SortDirection,
    SqlRepository,
    VisitRepository,
)

AGES = {"P17": 17, "P18": 18, "P40": 40, "P65": 65, "P66": 66}


@pytest.fixture
def patients(clinical_db: Sql, repository_settings: RepositorySettings) -> PatientRepository:
    return PatientRepository(clinical_db, settings=repository_settings)


@pytest.fixture
async def seeded_patients(patients: PatientRepository) -> dict[str, int]:
    ids: dict[str, int] = {}
    for code, age in AGES.items():
        row = await patients.create(
            {
                "PATIENT_CD": code,
                "AGE_IN_YEARS": age,
                "SEX_CD": "F" if age % 2 else "M",
                "VITAL_STATUS_CD": "A",
            },
        )
        ids[code] = row["PATIENT_NUM"]
    return ids


@pytest.mark.integration
class TestSqlRepositoryCrud:
    async def test_create_and_find_by_id(self, patients: PatientRepository) -> None:
        created = await patients.create(
            {"PATIENT_CD": "P1", "AGE_IN_YEARS": 30, "SEX_CD": None, "RACE_CD": UNSET},
        )
        assert created == {"PATIENT_CD": "P1", "AGE_IN_YEARS": 30, "PATIENT_NUM": 1}

        row = await patients.find_by_id(created["PATIENT_NUM"])
        assert row is not None
        assert row["PATIENT_CD"] == "P1"
        assert row["AGE_IN_YEARS"] == 30
        assert row["SEX_CD"] is None

    async def test_find_by_id_missing(self, patients: PatientRepository) -> None:
        assert await patients.find_by_id(999) is None
        with pytest.raises(EntityNotFoundError) as exc_info:
            await patients.find_by_id_or_raise(999)
        assert exc_info.value.entity_type == "Patient"
        assert exc_info.value.entity_id == 999

    async def test_create_requires_fields(self, patients: PatientRepository) -> None:
        with pytest.raises(EmptyEntityError):
            await patients.create({})
        with pytest.raises(EmptyEntityError):
            await patients.create({"PATIENT_CD": None, "SEX_CD": UNSET})

    async def test_create_rejects_unknown_field(self, patients: PatientRepository) -> None:
        with pytest.raises(InvalidFieldError):
            await patients.create({"PATIENT_CD": "P1", "SHOE_SIZE": 42})
        assert await patients.count_by_criteria() == 0

    async def test_constraint_violation_propagates(self, patients: PatientRepository) -> None:
        await patients.create({"PATIENT_CD": "DUP"})
        with pytest.raises(StatementError):
            await patients.create({"PATIENT_CD": "DUP"})

    async def test_update(self, patients: PatientRepository) -> None:
        created = await patients.create({"PATIENT_CD": "P1", "AGE_IN_YEARS": 30})
        pk = created["PATIENT_NUM"]

        assert await patients.update(pk, {"AGE_IN_YEARS": 31, "SEX_CD": None})
        row = await patients.find_by_id(pk)
        assert row is not None
        assert row["AGE_IN_YEARS"] == 31

        assert not await patients.update(999, {"AGE_IN_YEARS": 1})
        with pytest.raises(EntityNotFoundError):
            await patients.update_or_raise(999, {"AGE_IN_YEARS": 1})

    async def test_update_requires_fields(self, patients: PatientRepository) -> None:
        created = await patients.create({"PATIENT_CD": "P1"})
        with pytest.raises(NoFieldsToUpdateError):
            await patients.update(created["PATIENT_NUM"], {"SEX_CD": None})
        # the primary key is never an updatable field
        with pytest.raises(NoFieldsToUpdateError):
            await patients.update(created["PATIENT_NUM"], {"PATIENT_NUM": 5})

    async def test_delete(self, patients: PatientRepository) -> None:
        created = await patients.create({"PATIENT_CD": "P1"})
        assert await patients.delete(created["PATIENT_NUM"])
        assert not await patients.delete(created["PATIENT_NUM"])
        with pytest.raises(EntityNotFoundError) as exc_info:
            await patients.delete_or_raise(created["PATIENT_NUM"])
        assert exc_info.value.operation == "delete"


@pytest.mark.integration
class TestSqlRepositoryQueries:
    async def test_age_range_is_inclusive(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        rows = await patients.find_by_age_range(18, 65)
        assert [r["AGE_IN_YEARS"] for r in rows] == [18, 40, 65]

    async def test_in_criteria(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        rows = await patients.find_by_criteria(
            {"PATIENT_CD": ["P17", "P66", "NOPE"]},
            QueryOptions(order_by="PATIENT_CD"),
        )
        assert [r["PATIENT_CD"] for r in rows] == ["P17", "P66"]
        assert await patients.find_by_criteria({"PATIENT_CD": []}) == []

    async def test_skipped_criteria_match_everything(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        rows = await patients.find_by_criteria({"SEX_CD": None, "PATIENT_CD": ""})
        assert len(rows) == len(AGES)

    async def test_ordering_and_paging(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        rows = await patients.find_all(
            QueryOptions(
                order_by="AGE_IN_YEARS",
                order_direction=SortDirection.DESC,
                limit=2,
                offset=1,
            ),
        )
        assert [r["AGE_IN_YEARS"] for r in rows] == [65, 40]

        tail = await patients.find_all(QueryOptions(order_by="AGE_IN_YEARS", offset=3))
        assert [r["AGE_IN_YEARS"] for r in tail] == [65, 66]

    async def test_count_and_exists(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        assert await patients.count_by_criteria() == 5
        assert await patients.count_by_criteria(
            {"AGE_IN_YEARS": {"operator": ">=", "value": 40}},
        ) == 3
        assert await patients.exists({"PATIENT_CD": "P40"})
        assert not await patients.exists({"PATIENT_CD": "P99"})

    async def test_update_and_delete_by_criteria(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        changed = await patients.update_by_criteria(
            {"AGE_IN_YEARS": {"operator": ">", "value": 60}},
            {"VITAL_STATUS_CD": "D"},
        )
        assert changed == 2
        assert [r["PATIENT_CD"] for r in await patients.find_by_vital_status("D")] == [
            "P65",
            "P66",
        ]

        with pytest.raises(NoFieldsToUpdateError):
            await patients.update_by_criteria({"PATIENT_CD": "P17"}, {"SEX_CD": None})

        assert await patients.delete_by_criteria({"VITAL_STATUS_CD": "D"}) == 2
        assert await patients.count_by_criteria() == 3

    async def test_find_by_patient_code(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        row = await patients.find_by_patient_code("P40")
        assert row is not None
        assert row["PATIENT_NUM"] == seeded_patients["P40"]
        assert await patients.find_by_patient_code("P99") is None

    async def test_raw_query(
        self, patients: PatientRepository, seeded_patients: dict[str, int]
    ) -> None:
        rows = await patients.execute_raw_query(
            "SELECT MAX(AGE_IN_YEARS) AS oldest FROM PATIENT_DIMENSION",
        )
        assert rows == [{"oldest": 66}]


@pytest.mark.integration
class TestClinicalRepositories:
    async def test_visits_cascade_with_patient(
        self, clinical_db: Sql, patients: PatientRepository
    ) -> None:
        visits = VisitRepository(clinical_db)
        observations = ObservationRepository(clinical_db)
        patient = await patients.create({"PATIENT_CD": "P1"})
        pk = patient["PATIENT_NUM"]

        first = await visits.create({"PATIENT_NUM": pk, "START_DATE": "2024-01-01"})
        second = await visits.create({"PATIENT_NUM": pk, "START_DATE": "2024-06-01"})
        await observations.create(
            {
                "PATIENT_NUM": pk,
                "ENCOUNTER_NUM": second["ENCOUNTER_NUM"],
                "CONCEPT_CD": "VITAL:HR",
                "CATEGORY_CHAR": "vital",
                "NVAL_NUM": 72.0,
            },
        )

        rows = await visits.find_by_patient(pk)
        assert [r["ENCOUNTER_NUM"] for r in rows] == [
            second["ENCOUNTER_NUM"],
            first["ENCOUNTER_NUM"],
        ]
        assert len(await observations.find_by_encounter(second["ENCOUNTER_NUM"])) == 1

        assert await patients.delete(pk)
        assert await visits.count_by_criteria() == 0
        assert await observations.count_by_criteria() == 0

    async def test_visit_requires_existing_patient(self, clinical_db: Sql) -> None:
        with pytest.raises(StatementError):
            await VisitRepository(clinical_db).create({"PATIENT_NUM": 12345})

    async def test_observation_finders(self, clinical_db: Sql) -> None:
        observations = ObservationRepository(clinical_db)
        for value, category in ((36.6, "vital"), (7.2, "laboratory"), (120.0, "vital")):
            await observations.create({"NVAL_NUM": value, "CATEGORY_CHAR": category})

        assert len(await observations.find_by_category("vital")) == 2
        in_range = await observations.find_by_numeric_range(5, 40)
        assert sorted(r["NVAL_NUM"] for r in in_range) == [7.2, 36.6]

    async def test_concepts_keep_given_key(self, clinical_db: Sql) -> None:
        concepts = ConceptRepository(clinical_db)
        created = await concepts.create(
            {"CONCEPT_CD": "LAB:GLU", "NAME_CHAR": "Glucose", "CATEGORY_CHAR": "laboratory"},
        )
        assert created["CONCEPT_CD"] == "LAB:GLU"
        await concepts.create({"CONCEPT_CD": "LAB:HBA1C", "NAME_CHAR": "Glycated hemoglobin"})
        await concepts.create({"CONCEPT_CD": "VITAL:HR", "NAME_CHAR": "Heart rate"})

        row = await concepts.find_by_id("LAB:GLU")
        assert row is not None
        assert row["NAME_CHAR"] == "Glucose"

        matches = await concepts.search_by_name("gl")
        assert [r["CONCEPT_CD"] for r in matches] == ["LAB:GLU", "LAB:HBA1C"]
        assert len(await concepts.search_by_name("gl", limit=1)) == 1
        assert [r["CONCEPT_CD"] for r in await concepts.find_by_category("laboratory")] == [
            "LAB:GLU",
        ]

    async def test_notes(self, clinical_db: Sql, patients: PatientRepository) -> None:
        notes = NoteRepository(clinical_db)
        patient = await patients.create({"PATIENT_CD": "P1"})
        await notes.create(
            {
                "PATIENT_NUM": patient["PATIENT_NUM"],
                "CATEGORY_CHAR": "discharge",
                "NOTE_TEXT": "Stable.",
            },
        )
        assert len(await notes.find_by_patient(patient["PATIENT_NUM"])) == 1
        assert len(await notes.find_by_category("discharge")) == 1

    async def test_code_lookup(self, clinical_db: Sql) -> None:
        lookups = CodeLookupRepository(clinical_db)
        await lookups.create(
            {
                "TABLE_CD": "PATIENT_DIMENSION",
                "COLUMN_CD": "SEX_CD",
                "CODE_CD": "F",
                "NAME_CHAR": "Female",
            },
        )
        await lookups.create(
            {
                "TABLE_CD": "PATIENT_DIMENSION",
                "COLUMN_CD": "SEX_CD",
                "CODE_CD": "M",
                "NAME_CHAR": "Male",
            },
        )

        row = await lookups.find_code("F")
        assert row is not None
        assert row["NAME_CHAR"] == "Female"
        assert await lookups.find_code("F", "VISIT_DIMENSION") is None
        assert await lookups.find_code("M", "PATIENT_DIMENSION", "SEX_CD") is not None
        codes = await lookups.find_by_column("PATIENT_DIMENSION", "SEX_CD")
        assert [r["CODE_CD"] for r in codes] == ["F", "M"]


@pytest.mark.integration
class TestGenericRepository:
    async def test_configured_by_constructor(self, clinical_db: Sql) -> None:
        repo: SqlRepository[t.Any] = SqlRepository(
            clinical_db,
            table_name="CONCEPT_DIMENSION",
            primary_key="CONCEPT_CD",
            fields=("NAME_CHAR",),
        )
        assert repo.entity_name == "CONCEPT_DIMENSION"
        assert repo.table == "CONCEPT_DIMENSION"
        assert repo.pk == "CONCEPT_CD"
        await repo.create({"CONCEPT_CD": "X", "NAME_CHAR": "Example"})
        assert await repo.exists({"NAME_CHAR": "Example"})

    async def test_table_name_required(self, clinical_db: Sql) -> None:
        with pytest.raises(ValueError, match="table name"):
            SqlRepository(clinical_db)
