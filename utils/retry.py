# utils/retry.py
import functools
import logging

from sqlalchemy.exc import DisconnectionError, OperationalError

from db.extensions import db

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (OperationalError, DisconnectionError)


def retry_transient(func):
    """Run a unit of store work, retrying exactly once on a transient store error.

    Domain errors (BookingError and friends) and integrity failures are not
    transient and propagate on the first attempt.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TRANSIENT_STORE_ERRORS as e:
            db.session.rollback()
            logger.warning("store.transient_error func=%s error=%s retrying=1", func.__name__, e)
            return func(*args, **kwargs)
    return wrapper
