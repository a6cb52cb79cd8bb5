"""Tests for error-to-message translation."""
import pytest

from chatroute.core.errors import UserFacingError, user_facing
from chatroute.core.reporting import ErrorReporter, error_message, iter_causes


class NotFound(UserFacingError):
    reason = "No such game"


@user_facing(reason="Quota exceeded")
class QuotaError(Exception):
    pass


@user_facing()
class ValidationError(Exception):
    pass


def _chain(*excs: BaseException) -> BaseException:
    """Link ``excs`` so each one is caused by the next."""
    for outer, inner in zip(excs, excs[1:]):
        outer.__cause__ = inner
    return excs[0]


def test_reason_of_first_marked_cause_is_used():
    exc = _chain(RuntimeError("wrapper"), NotFound(), KeyError("k"))
    assert error_message(exc) == "No such game"


def test_outermost_marked_exception_wins():
    exc = _chain(RuntimeError("wrapper"), QuotaError(), NotFound())
    assert error_message(exc) == "Quota exceeded"


def test_empty_reason_falls_back_to_exception_message():
    assert error_message(_chain(RuntimeError(), ValidationError("bad date"))) == "bad date"
    assert error_message(UserFacingError("plain message")) == "plain message"
    assert error_message(UserFacingError("ignored", reason="explicit")) == "explicit"


def test_fallback_embeds_innermost_cause():
    exc = _chain(RuntimeError("outer"), ValueError("inner detail"))
    assert error_message(exc, "Oops.") == "Oops.; nested exception is ValueError: inner detail"


def test_implicit_context_is_followed():
    try:
        try:
            raise NotFound()
        except NotFound:
            raise RuntimeError("while handling")  # pylint: disable=raise-missing-from
    except RuntimeError as e:
        assert error_message(e) == "No such game"


def test_cyclic_chain_terminates():
    a, b = RuntimeError("a"), RuntimeError("b")
    a.__cause__ = b
    b.__cause__ = a

    assert list(iter_causes(a)) == [a, b]
    assert error_message(a, "Oops.") == "Oops.; nested exception is RuntimeError: b"


@pytest.mark.trio
async def test_reporter_sends_to_channel(transport):
    await ErrorReporter(transport).report("C1", NotFound())
    assert transport.channel_messages == [("C1", "No such game")]


@pytest.mark.trio
async def test_reporter_never_raises(transport):
    transport.fail_sends = True
    await ErrorReporter(transport).report("C1", NotFound())
    assert transport.calls == []
