"""Repository layer.

One criteria-driven SQL repository shared by every table, plus thin
repositories for the clinical schema.

Criteria format::

    {
        "SEX_CD": "F",                                         # equality
        "VITAL_STATUS_CD": ["A", "D"],                         # IN
        "AGE_IN_YEARS": {"operator": "BETWEEN", "value": [18, 65]},
        "PATIENT_CD": None,                                    # ignored
    }
"""

from ._base import (
    UNSET,
    Criteria,
    EmptyEntityError,
    EntityNotFoundError,
    InvalidCriteriaError,
    InvalidFieldError,
    NoFieldsToUpdateError,
    QueryOptions,
    RepositoryBase,
    RepositoryError,
    RepositorySettings,
    Row,
    SortDirection,
)
from .criteria import Condition, Operator, Statement, StatementBuilder
from .entities import (
    CodeLookupRepository,
    ConceptRepository,
    NoteRepository,
    ObservationRepository,
    PatientRepository,
    VisitRepository,
)
from .sql import SqlRepository

__all__ = [
    "UNSET",
    "CodeLookupRepository",
    "ConceptRepository",
    "Condition",
    "Criteria",
    "EmptyEntityError",
    "EntityNotFoundError",
    "InvalidCriteriaError",
    "InvalidFieldError",
    "NoFieldsToUpdateError",
    "NoteRepository",
    "ObservationRepository",
    "Operator",
    "PatientRepository",
    "QueryOptions",
    "RepositoryBase",
    "RepositoryError",
    "RepositorySettings",
    "Row",
    "SortDirection",
    "SqlRepository",
    "Statement",
    "StatementBuilder",
    "VisitRepository",
]
