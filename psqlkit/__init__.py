"""PostgreSQL access layer: connection routing, nested transactions and SQL templating."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import ConnectorConfig, ServerProfileConfig, load_config
from .errors import (
    DatabaseConnectionError,
    InsufficientBindingError,
    MalformedOperationParamsError,
    NoActiveConnectionError,
    NonUtf8ValueError,
    PsqlkitError,
    ServerSwitchDuringTransactionError,
    UnderlyingDriverError,
)
from .models import QueryLogEntry, RawFragment, ServerProfile, Structured
from .query import FetchMode
from .select import SelectBuilder
from .session import Session

__all__ = [
    "ConnectorConfig",
    "DatabaseConnectionError",
    "FetchMode",
    "InsufficientBindingError",
    "MalformedOperationParamsError",
    "NoActiveConnectionError",
    "NonUtf8ValueError",
    "PsqlkitError",
    "QueryLogEntry",
    "RawFragment",
    "SelectBuilder",
    "ServerProfile",
    "ServerProfileConfig",
    "ServerSwitchDuringTransactionError",
    "Session",
    "Structured",
    "UnderlyingDriverError",
    "__version__",
    "load_config",
]
