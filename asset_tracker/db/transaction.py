"""Commit boundary shared by every mutating registry/ledger operation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.errors import AssetTrackerError, Conflict, StorageUnavailable

LOGGER = logging.getLogger(__name__)

# Audit payloads whose SAVEPOINT insert failed wait here until the commit.
PENDING_AUDIT_KEY = "pending_audit_entries"


class UnitOfWork:
    def __init__(self) -> None:
        self.warnings: list[str] = []


def _discard_pending_audit(db: Session) -> None:
    db.info.pop(PENDING_AUDIT_KEY, None)


@contextmanager
def unit_of_work(
    db: Session,
    *,
    conflict: str | Callable[[], Conflict] = "The record was changed by another request",
) -> Iterator[UnitOfWork]:
    """Run the block as one transaction and translate storage failures.

    A lost optimistic-lock race or a unique/partial-index violation becomes
    ``Conflict``; any other SQLAlchemy failure becomes ``StorageUnavailable``.
    Nothing is retried here. Audit entries that could not be written inside the
    transaction are spooled only once the primary change has committed.
    """

    uow = UnitOfWork()
    try:
        yield uow
        db.commit()
    except AssetTrackerError:
        db.rollback()
        _discard_pending_audit(db)
        raise
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        _discard_pending_audit(db)
        LOGGER.info("transaction.conflict", extra={"extra_data": {"error": type(exc).__name__}})
        raise (conflict() if callable(conflict) else Conflict(conflict)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        _discard_pending_audit(db)
        LOGGER.error("transaction.storage_failed", exc_info=True)
        raise StorageUnavailable("Storage is unavailable; no changes were saved") from exc

    pending = db.info.pop(PENDING_AUDIT_KEY, None)
    if pending:
        from ..services.audit_spool import spool_entries

        try:
            uow.warnings.extend(spool_entries(pending))
        except OSError:
            # The change is committed; the entries survive only in these log lines.
            for payload in pending:
                LOGGER.error(
                    "audit.entry_lost",
                    exc_info=True,
                    extra={"extra_data": {"payload": payload}},
                )
                uow.warnings.append(
                    f"Audit entry {payload['action']} for {payload['entity_type']} "
                    f"{payload['entity_id']} could not be recorded"
                )
