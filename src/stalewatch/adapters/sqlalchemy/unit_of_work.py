"""SQLAlchemy-backed unit of work for the materialization ledger.

The ledger database is process-wide: ``startup()`` binds it once (creating the
table if needed) and every ``SqlAlchemyLedgerUnitOfWork`` opens its own session
on it. ``shutdown()`` disposes the engine again.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from stalewatch.adapters.sqlalchemy.mappings import create_all_tables
from stalewatch.adapters.sqlalchemy.repositories import SqlAlchemyMaterializationRecordRepository
from stalewatch.config import get_database_config
from stalewatch.domain.ports.unit_of_work import LedgerRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the ledger database is used before ``startup()`` or bound twice."""


class _LedgerDatabase:
    __slots__ = ("engine", "sessions")

    def __init__(self) -> None:
        self.engine: Engine | None = None
        self.sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine) -> None:
        create_all_tables(engine)
        self.engine = engine
        self.sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def release(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.sessions = None

    def open_session(self) -> Session:
        if self.sessions is None:
            raise StartupError(
                "Ledger database not bound; call "
                "stalewatch.adapters.sqlalchemy.unit_of_work.startup() first"
            )
        return self.sessions()


_DATABASE = _LedgerDatabase()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the ledger database, creating the record table when missing.

    ``engine`` wins over ``database_uri``, which wins over ``DATABASE_URI`` and
    the default SQLite file. Rebinding an already bound database needs ``force``.
    """

    if _DATABASE.engine is not None and not force:
        raise StartupError("Ledger database already bound; pass force=True to rebind")
    if engine is None:
        engine = create_engine(database_uri or get_database_config().uri, future=True)
    _DATABASE.bind(engine)
    log.debug("Ledger database bound to %s", engine.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _DATABASE.engine


def is_started() -> bool:
    return _DATABASE.engine is not None


def shutdown() -> None:
    """Dispose the bound engine; a later ``startup()`` may bind a new one."""

    _DATABASE.release()


class SqlAlchemyLedgerUnitOfWork:
    """One session per ``with`` block; rolled back when the block raises."""

    def __init__(self) -> None:
        if not is_started():
            raise StartupError("Ledger database not bound")
        self._session: Session | None = None
        self._repositories: LedgerRepositories | None = None

    def __enter__(self) -> SqlAlchemyLedgerUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work already entered")
        self._session = _DATABASE.open_session()
        self._repositories = LedgerRepositories(
            records=SqlAlchemyMaterializationRecordRepository(self._session)
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> LedgerRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work not entered")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work not entered")
        return self._session


if TYPE_CHECKING:
    from stalewatch.domain.ports.unit_of_work import LedgerUnitOfWork

    _uow_check: LedgerUnitOfWork = SqlAlchemyLedgerUnitOfWork()
