"""Built-in clinical schema.

Star schema with patient, visit and concept dimensions around the
observation and note facts, plus a code lookup table for display metadata.
"""

from clinicore.migration._base import Migration

_TOUCH_PATIENT = """
BEGIN
  UPDATE PATIENT_DIMENSION
  SET UPDATE_DATE = datetime('now')
  WHERE PATIENT_NUM = {ref}.PATIENT_NUM;
END"""


def _touch_trigger(name: str, event: str, table: str, ref: str) -> str:
    return (
        f"CREATE TRIGGER {name}\nAFTER {event} ON {table}\nFOR EACH ROW"
        + _TOUCH_PATIENT.format(ref=ref)
    )


CORE_TABLES = Migration(
    version=1,
    name="create-core-tables",
    description="Patient, visit, concept, code lookup, observation and note tables",
    statements=[
        """CREATE TABLE PATIENT_DIMENSION (
  PATIENT_NUM INTEGER PRIMARY KEY AUTOINCREMENT,
  PATIENT_CD TEXT UNIQUE,
  VITAL_STATUS_CD TEXT,
  BIRTH_DATE TEXT,
  DEATH_DATE TEXT,
  SEX_CD TEXT,
  AGE_IN_YEARS INTEGER,
  LANGUAGE_CD TEXT,
  RACE_CD TEXT,
  MARITAL_STATUS_CD TEXT,
  RELIGION_CD TEXT,
  STATECITYZIP_PATH TEXT,
  PATIENT_BLOB TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  SOURCESYSTEM_CD TEXT,
  UPLOAD_ID INTEGER
)""",
        """CREATE TABLE VISIT_DIMENSION (
  ENCOUNTER_NUM INTEGER PRIMARY KEY AUTOINCREMENT,
  PATIENT_NUM INTEGER NOT NULL
    REFERENCES PATIENT_DIMENSION (PATIENT_NUM) ON DELETE CASCADE,
  ACTIVE_STATUS_CD TEXT,
  START_DATE TEXT,
  END_DATE TEXT,
  INOUT_CD TEXT,
  LOCATION_CD TEXT,
  VISIT_BLOB TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  SOURCESYSTEM_CD TEXT,
  UPLOAD_ID INTEGER
)""",
        """CREATE TABLE CONCEPT_DIMENSION (
  CONCEPT_CD TEXT PRIMARY KEY,
  CONCEPT_PATH TEXT,
  NAME_CHAR TEXT,
  CONCEPT_BLOB TEXT,
  VALTYPE_CD TEXT,
  UNIT_CD TEXT,
  CATEGORY_CHAR TEXT,
  RELATED_CONCEPT TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  SOURCESYSTEM_CD TEXT,
  UPLOAD_ID INTEGER
)""",
        """CREATE TABLE CODE_LOOKUP (
  CODE_LOOKUP_ID INTEGER PRIMARY KEY AUTOINCREMENT,
  TABLE_CD TEXT NOT NULL,
  COLUMN_CD TEXT NOT NULL,
  CODE_CD TEXT NOT NULL,
  NAME_CHAR TEXT,
  LOOKUP_BLOB TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  SOURCESYSTEM_CD TEXT,
  UPLOAD_ID INTEGER,
  UNIQUE (TABLE_CD, COLUMN_CD, CODE_CD)
)""",
        """CREATE TABLE OBSERVATION_FACT (
  OBSERVATION_ID INTEGER PRIMARY KEY AUTOINCREMENT,
  ENCOUNTER_NUM INTEGER
    REFERENCES VISIT_DIMENSION (ENCOUNTER_NUM) ON DELETE CASCADE,
  PATIENT_NUM INTEGER
    REFERENCES PATIENT_DIMENSION (PATIENT_NUM) ON DELETE CASCADE,
  CATEGORY_CHAR TEXT,
  CONCEPT_CD TEXT,
  PROVIDER_ID TEXT,
  START_DATE TEXT,
  END_DATE TEXT,
  INSTANCE_NUM INTEGER,
  VALTYPE_CD TEXT,
  TVAL_CHAR TEXT,
  NVAL_NUM REAL,
  VALUEFLAG_CD TEXT,
  UNIT_CD TEXT,
  LOCATION_CD TEXT,
  OBSERVATION_BLOB TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  SOURCESYSTEM_CD TEXT,
  UPLOAD_ID INTEGER
)""",
        """CREATE TABLE NOTE_FACT (
  NOTE_ID INTEGER PRIMARY KEY AUTOINCREMENT,
  CATEGORY_CHAR TEXT,
  NAME_CHAR TEXT,
  NOTE_BLOB TEXT,
  UPDATE_DATE TEXT,
  IMPORT_DATE TEXT DEFAULT CURRENT_TIMESTAMP,
  UPLOAD_ID INTEGER
)""",
    ],
    rollback_statements=[
        "DROP TABLE NOTE_FACT",
        "DROP TABLE OBSERVATION_FACT",
        "DROP TABLE CODE_LOOKUP",
        "DROP TABLE CONCEPT_DIMENSION",
        "DROP TABLE VISIT_DIMENSION",
        "DROP TABLE PATIENT_DIMENSION",
    ],
)

_INDEXES = {
    "idx_visit_patient": "VISIT_DIMENSION (PATIENT_NUM)",
    "idx_visit_start_date": "VISIT_DIMENSION (START_DATE)",
    "idx_observation_patient": "OBSERVATION_FACT (PATIENT_NUM)",
    "idx_observation_encounter": "OBSERVATION_FACT (ENCOUNTER_NUM)",
    "idx_observation_concept": "OBSERVATION_FACT (CONCEPT_CD)",
    "idx_observation_category": "OBSERVATION_FACT (CATEGORY_CHAR)",
    "idx_concept_path": "CONCEPT_DIMENSION (CONCEPT_PATH)",
    "idx_concept_category": "CONCEPT_DIMENSION (CATEGORY_CHAR)",
    "idx_code_lookup_column": "CODE_LOOKUP (TABLE_CD, COLUMN_CD)",
}

CORE_INDEXES = Migration(
    version=2,
    name="create-core-indexes",
    description="Lookup indexes for the foreign keys and common filters",
    statements=[f"CREATE INDEX {name} ON {target}" for name, target in _INDEXES.items()],
    rollback_statements=[f"DROP INDEX {name}" for name in reversed(_INDEXES)],
)

_NOTE_COLUMNS = {
    "SOURCESYSTEM_CD": "TEXT",
    "NOTE_TEXT": "TEXT",
    "PATIENT_NUM": "INTEGER",
    "ENCOUNTER_NUM": "INTEGER",
}

NOTE_FACT_COLUMNS = Migration(
    version=3,
    name="add-note-fact-columns",
    description="Link notes to patients and encounters for search",
    statements=[
        *(f"ALTER TABLE NOTE_FACT ADD COLUMN {col} {kind}" for col, kind in _NOTE_COLUMNS.items()),
        "CREATE INDEX idx_note_fact_patient_num ON NOTE_FACT (PATIENT_NUM)",
        "CREATE INDEX idx_note_fact_encounter_num ON NOTE_FACT (ENCOUNTER_NUM)",
        "CREATE INDEX idx_note_fact_sourcesystem_cd ON NOTE_FACT (SOURCESYSTEM_CD)",
    ],
    rollback_statements=[
        "DROP INDEX idx_note_fact_sourcesystem_cd",
        "DROP INDEX idx_note_fact_encounter_num",
        "DROP INDEX idx_note_fact_patient_num",
        *(f"ALTER TABLE NOTE_FACT DROP COLUMN {col}" for col in reversed(_NOTE_COLUMNS)),
    ],
)

_TRIGGERS = {
    "update_patient_on_visit_insert": ("INSERT", "VISIT_DIMENSION", "NEW"),
    "update_patient_on_visit_update": ("UPDATE", "VISIT_DIMENSION", "NEW"),
    "update_patient_on_visit_delete": ("DELETE", "VISIT_DIMENSION", "OLD"),
    "update_patient_on_observation_insert": ("INSERT", "OBSERVATION_FACT", "NEW"),
    "update_patient_on_observation_update": ("UPDATE", "OBSERVATION_FACT", "NEW"),
    "update_patient_on_observation_delete": ("DELETE", "OBSERVATION_FACT", "OLD"),
}

PATIENT_UPDATE_TRIGGERS = Migration(
    version=4,
    name="patient-update-triggers",
    description="Keep PATIENT_DIMENSION.UPDATE_DATE current when patient data changes",
    statements=[
        """CREATE TRIGGER update_patient_on_patient_update
AFTER UPDATE ON PATIENT_DIMENSION
FOR EACH ROW
WHEN NEW.UPDATE_DATE = OLD.UPDATE_DATE OR NEW.UPDATE_DATE IS NULL"""
        + _TOUCH_PATIENT.format(ref="NEW"),
        *(
            _touch_trigger(name, event, table, ref)
            for name, (event, table, ref) in _TRIGGERS.items()
        ),
    ],
    rollback_statements=[
        "DROP TRIGGER update_patient_on_patient_update",
        *(f"DROP TRIGGER {name}" for name in _TRIGGERS),
    ],
)


def default_migrations() -> list[Migration]:
    """Clinical schema migrations in version order."""
    return [CORE_TABLES, CORE_INDEXES, NOTE_FACT_COLUMNS, PATIENT_UPDATE_TRIGGERS]
