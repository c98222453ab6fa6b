"""
Transaction boundaries and retry policy for write-contended operations
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from shopcore.config import settings
from shopcore.errors import ConstraintViolationError, TransientConflictError

logger = logging.getLogger(__name__)

# PostgreSQL: serialization_failure, deadlock_detected
RETRYABLE_PGCODES = {"40001", "40P01"}
RETRYABLE_MESSAGES = ("deadlock detected", "could not serialize access", "database is locked")


def _pgcode_from(exc: Exception):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(exc, "pgcode", None)


def is_retryable(exc: Exception) -> bool:
    """True for deadlocks and serialization conflicts"""
    code = _pgcode_from(exc)
    if code and code in RETRYABLE_PGCODES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


@contextmanager
def atomic(db: Session):
    """
    Run the block as one transaction

    Commits on success and rolls back on any exception. Store errors are
    translated: constraint failures become ConstraintViolationError,
    deadlocks and serialization failures become TransientConflictError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConstraintViolationError(str(e.orig)) from e
    except DBAPIError as e:
        db.rollback()
        if is_retryable(e):
            raise TransientConflictError(str(e.orig)) from e
        raise
    except Exception:
        db.rollback()
        raise


def retry_on_conflict(func):
    """Re-run a whole transaction a bounded number of times on TransientConflictError"""
    return retry(
        stop=stop_after_attempt(settings.TX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.TX_RETRY_BACKOFF, max=1),
        retry=retry_if_exception_type(TransientConflictError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )(func)
