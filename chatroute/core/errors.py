"""Exception types used across the routing core.

Registration errors abort startup. Everything raised while a handler runs is
caught by the router and turned into a chat notification by the error
reporter; exceptions marked user-facing carry the text shown to users.
"""
from typing import Callable, Optional, Type, TypeVar

E = TypeVar("E", bound=Type[BaseException])


class ChatRouteError(Exception):
    """Base class for all chatroute errors."""


class RegistrationError(ChatRouteError):
    """A handler declaration cannot be compiled."""


class InvalidPatternError(RegistrationError):
    """A declared match pattern is not a valid regular expression."""


class UnboundParameterError(RegistrationError):
    """A handler parameter has no resolvable binding role."""


class MalformedEventError(ChatRouteError):
    """An incoming event lacks a required identifying field."""


class ActionDecodeError(ChatRouteError):
    """An interactive-action payload is missing a required field."""


class TransportError(ChatRouteError):
    """An outbound call to the chat transport failed."""


class UserFacingError(ChatRouteError):
    """An error whose reason may be shown to chat users.

    Attributes:
        reason: Text sent to the channel. When empty, ``str(exc)`` is used.
    """
    reason: str = ""

    def __init__(self, message: str = "", reason: Optional[str] = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


def user_facing(reason: str = "") -> Callable[[E], E]:
    """Class decorator marking an existing exception type as user-facing.

    Useful for exceptions that cannot inherit from UserFacingError, e.g.
    domain errors defined elsewhere.

    Args:
        reason: Fixed reason text; empty means use the exception message
    """
    def decorate(cls: E) -> E:
        cls.__user_facing_reason__ = reason  # type: ignore[attr-defined]
        return cls

    return decorate


def user_facing_reason(exc: BaseException) -> Optional[str]:
    """Return the reason text for a user-facing exception, None otherwise."""
    if isinstance(exc, UserFacingError):
        return exc.reason or str(exc)
    marker = getattr(type(exc), "__user_facing_reason__", None)
    if marker is None:
        return None
    return marker or str(exc)
