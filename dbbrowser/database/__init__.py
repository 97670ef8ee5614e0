"""Backend contract, MySQL transport and shared data types."""

from .connection import MySQLBackend
from .errors import (
    BackendError,
    BrowserConnectionError,
    BrowserError,
    ConnectionLostError,
    PartialResolutionError,
    SelectionRequiredError,
)
from .gateway import Backend, BackendGateway
from .models import ConnectionParams, ForeignKeyDescriptor, ForeignKeyOption, Row, TableSchema

__all__ = [
    "Backend",
    "BackendGateway",
    "MySQLBackend",
    "BackendError",
    "BrowserConnectionError",
    "BrowserError",
    "ConnectionLostError",
    "PartialResolutionError",
    "SelectionRequiredError",
    "ConnectionParams",
    "ForeignKeyDescriptor",
    "ForeignKeyOption",
    "Row",
    "TableSchema",
]
