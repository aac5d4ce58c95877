from ._base import (
    Command,
    CommandResult,
    DatabaseConnectionError,
    QueryResult,
    SqlBase,
    SqlError,
    SqlProtocol,
    StatementError,
    Transaction,
    TransactionResult,
)
from .sqlite import Sql, SqlSettings

__all__: list[str] = [
    "Command",
    "CommandResult",
    "DatabaseConnectionError",
    "QueryResult",
    "Sql",
    "SqlBase",
    "SqlError",
    "SqlProtocol",
    "SqlSettings",
    "StatementError",
    "Transaction",
    "TransactionResult",
]
