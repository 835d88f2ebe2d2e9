import pytest
from sqlalchemy.exc import OperationalError

from utils.errors import ValidationError
from utils.retry import retry_transient


def store_down():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def flaky(*failures, result="ok"):
    """Function raising each of `failures` in turn, then returning `result`."""
    calls = []
    pending = list(failures)

    @retry_transient
    def work():
        calls.append(1)
        if pending:
            raise pending.pop(0)
        return result

    return work, calls


def test_transient_store_error_is_retried_once(app):
    work, calls = flaky(store_down())

    assert work() == "ok"
    assert len(calls) == 2


def test_second_transient_error_propagates(app):
    work, calls = flaky(store_down(), store_down())

    with pytest.raises(OperationalError):
        work()
    assert len(calls) == 2


def test_domain_errors_are_not_retried(app):
    work, calls = flaky(ValidationError("slots must be at least 1"))

    with pytest.raises(ValidationError):
        work()
    assert len(calls) == 1


def test_wrapped_function_keeps_its_name():
    work, _ = flaky()
    assert work.__name__ == "work"
