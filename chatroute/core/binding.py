"""Parameter binding for handler targets.

Every handler parameter is bound to a role when the handler is registered.
A role turns the per-dispatch InvocationContext into the argument value, so
dispatch never inspects signatures. Roles come from an explicit ``params``
list or from annotations::

    def roll(self, user: Annotated[str, UserId], sides: Annotated[str, RegexGroup(1)]):
        ...

A parameter annotated with an event type (or ``Event``) receives the event
itself. Anything else is a registration error.
"""
import inspect
import logging
import re
import types
from dataclasses import dataclass
from typing import (
    Annotated,
    Any,
    Callable,
    Optional,
    Sequence,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from chatroute.core.errors import UnboundParameterError
from chatroute.core.models import EVENT_TYPES, Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvocationContext:
    """Values available to binders for one handler invocation.

    Attributes:
        event: The event being dispatched
        user_id: ID of the acting user
        content: Message text, None for reactions and actions
        match: Active pattern match, None when the handler has no pattern
        thread_id: Thread id for thread replies, None otherwise
    """
    event: Event
    user_id: str
    content: Optional[str] = None
    match: Optional[re.Match] = None
    thread_id: Optional[str] = None


Binder = Callable[[InvocationContext], Any]


class Role:
    """A way of deriving one argument from an InvocationContext."""

    def __init__(self, name: str, extract: Optional[Binder] = None) -> None:
        self.name = name
        self._extract = extract

    def binder(self, pattern: Optional[re.Pattern]) -> Binder:  # pylint: disable=unused-argument
        """Return the extraction function for a handler with ``pattern``."""
        if self._extract is None:
            raise UnboundParameterError(f"role {self.name} has no extractor")
        return self._extract

    def __repr__(self) -> str:
        return self.name


class RegexGroup(Role):
    """Binds a capture group of the active pattern match.

    Args:
        group: Group index or name
    """

    def __init__(self, group: Union[int, str]) -> None:
        super().__init__(f"RegexGroup({group!r})")
        self.group = group

    def binder(self, pattern: Optional[re.Pattern]) -> Binder:
        if pattern is not None and not self._in_pattern(pattern):
            raise UnboundParameterError(
                f"group {self.group!r} not defined in pattern {pattern.pattern!r}"
            )
        group = self.group

        def extract(ctx: InvocationContext) -> Optional[str]:
            if ctx.match is None:
                return None
            return ctx.match.group(group)

        return extract

    def _in_pattern(self, pattern: re.Pattern) -> bool:
        if isinstance(self.group, int):
            return 0 <= self.group <= pattern.groups
        return self.group in pattern.groupindex

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RegexGroup) and other.group == self.group

    def __hash__(self) -> int:
        return hash(("RegexGroup", self.group))


UserId = Role("UserId", lambda ctx: ctx.user_id)
MessageContent = Role("MessageContent", lambda ctx: ctx.content)
ChannelId = Role("ChannelId", lambda ctx: ctx.event.channel_id)
ThreadId = Role("ThreadId", lambda ctx: ctx.thread_id)
FullEvent = Role("FullEvent", lambda ctx: ctx.event)

# typing.Union, plus X | Y unions on 3.10+
_UNION_TYPES = tuple(t for t in (Union, getattr(types, "UnionType", None)) if t is not None)


def _event_types(annotation: Any) -> Optional[Tuple[type, ...]]:
    """Event classes named by ``annotation``, None if it is not an event type."""
    if annotation in EVENT_TYPES:
        return (annotation,)
    if get_origin(annotation) in _UNION_TYPES:
        args = get_args(annotation)
        if args and all(arg in EVENT_TYPES for arg in args):
            return args
    return None


def _role_from_annotation(
    annotation: Any, accepts: Optional[Tuple[type, ...]] = None
) -> Optional[Role]:
    if get_origin(annotation) is Annotated:
        for meta in annotation.__metadata__:
            if isinstance(meta, Role):
                return meta
        annotation = get_args(annotation)[0]
    declared = _event_types(annotation)
    if declared is None:
        return None
    if accepts is not None and not set(accepts) <= set(declared):
        raise UnboundParameterError(
            f"annotation {getattr(annotation, '__name__', annotation)} cannot receive "
            f"{', '.join(t.__name__ for t in accepts)} events"
        )
    return FullEvent


def _handler_name(target: Callable[..., Any]) -> str:
    return getattr(target, "__qualname__", repr(target))


def _declared_parameters(target: Callable[..., Any]) -> Sequence[inspect.Parameter]:
    params = list(inspect.signature(target).parameters.values())
    for p in params:
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            raise UnboundParameterError(
                f"Bad definition of the listener {_handler_name(target)}: "
                f"variadic parameter {p.name!r} cannot be bound"
            )
    return params


def _annotations(target: Callable[..., Any]) -> dict:
    try:
        return get_type_hints(target, include_extras=True)
    except (NameError, TypeError):
        # Unresolvable forward references: fall back to raw annotations
        return {}


def compile_plan(
    target: Callable[..., Any],
    params: Optional[Sequence[Any]] = None,
    pattern: Optional[re.Pattern] = None,
    accepts: Optional[Tuple[type, ...]] = None,
) -> Tuple[Binder, ...]:
    """Build the ordered binder list for ``target``.

    Args:
        target: Bound handler callable
        params: Explicit role per parameter; inferred from annotations if None
        pattern: Compiled match pattern, used to validate RegexGroup roles
        accepts: Event types the handler will be called with; an event
            annotation must admit all of them. None skips the check.

    Returns:
        One binder per declared parameter, in order

    Raises:
        UnboundParameterError: If any parameter has no resolvable role
    """
    name = _handler_name(target)
    declared = _declared_parameters(target)

    if params is not None:
        if len(params) != len(declared):
            raise UnboundParameterError(
                f"Bad definition of the listener {name}: {len(params)} roles "
                f"declared for {len(declared)} parameters"
            )
        roles = list(params)
    else:
        hints = _annotations(target)
        roles = []
        for p in declared:
            try:
                roles.append(_role_from_annotation(hints.get(p.name, p.annotation), accepts))
            except UnboundParameterError as e:
                raise UnboundParameterError(
                    f"Bad definition of the listener {name}: parameter {p.name!r}: {e}"
                ) from e

    plan = []
    for p, role in zip(declared, roles):
        if not isinstance(role, Role):
            raise UnboundParameterError(
                f"Bad definition of the listener {name}: "
                f"parameter {p.name!r} has no binding role"
            )
        try:
            plan.append(role.binder(pattern))
        except UnboundParameterError as e:
            raise UnboundParameterError(
                f"Bad definition of the listener {name}: parameter {p.name!r}: {e}"
            ) from e
        logger.debug("Bound %s.%s as %r", name, p.name, role)
    return tuple(plan)


def build_arguments(plan: Sequence[Binder], ctx: InvocationContext) -> list:
    """Apply every binder in ``plan`` to ``ctx``."""
    return [bind(ctx) for bind in plan]
