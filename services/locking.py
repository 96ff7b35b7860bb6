"""
Per-donation write lock and the transactional unit built on it.

Every state change of a donation (claim, cancel, pickup, delivery, donor
edit/delete) runs inside ``locked_donation``: lock, re-read, mutate, commit
or roll back, release. On PostgreSQL the lock is the donation row itself
(``SELECT ... FOR UPDATE``). Backends without row locks, such as SQLite,
fall back to an in-process lock keyed by donation id, which only serializes
callers inside a single process. Run more than one instance only against
PostgreSQL.
"""
import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager, nullcontext

import structlog
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from config import get_settings
from errors import NotFound, TransientStorageFailure
from models import Donation

logger = structlog.get_logger(__name__)

ROW_LOCKING_DIALECTS = {"postgresql", "mysql", "mariadb"}


class KeyedLock:
    """A mutex per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            if not entry[0].acquire(timeout=timeout):
                logger.warning("Lock wait timed out", key=key, timeout_s=timeout)
                raise TransientStorageFailure()
            try:
                yield
            finally:
                entry[0].release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


donation_locks = KeyedLock()


def uses_process_lock(session: Session) -> bool:
    if get_settings().process_locks:
        return True
    return session.get_bind().dialect.name not in ROW_LOCKING_DIALECTS


@contextmanager
def locked_donation(session: Session, donation_id: int) -> Iterator[Donation]:
    """
    Run the enclosed block as one atomic unit holding the donation's lock.

    Yields the freshly read donation. Commits when the block finishes and
    rolls back when it raises, so nothing the block changed survives a
    failure. Raises NotFound for an unknown donation and
    TransientStorageFailure when the lock or the write times out.
    """
    settings = get_settings()
    timeout_ms = settings.lock_timeout_ms

    if uses_process_lock(session):
        guard = donation_locks.hold(donation_id, timeout_ms / 1000)
    else:
        guard = nullcontext()

    with guard:
        try:
            if session.get_bind().dialect.name == "postgresql":
                session.connection().exec_driver_sql(
                    f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"
                )

            donation = session.exec(
                select(Donation)
                .where(Donation.id == donation_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).first()
            if donation is None:
                raise NotFound("Donation not found")

            yield donation

            session.commit()
        except OperationalError as exc:
            session.rollback()
            logger.warning(
                "Donation write failed",
                donation_id=donation_id,
                error=str(exc.orig),
            )
            raise TransientStorageFailure() from exc
        except Exception:
            session.rollback()
            raise
