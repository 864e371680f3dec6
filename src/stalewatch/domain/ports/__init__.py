"""Domain port definitions for adapters."""

from __future__ import annotations

from .declarations import DeclarationSource
from .execution import (
    CompletionCallback,
    ExecutionBackend,
    MaterializationFailure,
    MaterializationOutcome,
    MaterializationSuccess,
    PollingExecutionBackend,
    SubmissionHandle,
)
from .persistence import MaterializationRecordRepository
from .unit_of_work import LedgerRepositories, LedgerUnitOfWork, RepositoryCollection, UnitOfWork

__all__ = [
    "CompletionCallback",
    "DeclarationSource",
    "ExecutionBackend",
    "LedgerRepositories",
    "LedgerUnitOfWork",
    "MaterializationFailure",
    "MaterializationOutcome",
    "MaterializationRecordRepository",
    "MaterializationSuccess",
    "PollingExecutionBackend",
    "RepositoryCollection",
    "SubmissionHandle",
    "UnitOfWork",
]
