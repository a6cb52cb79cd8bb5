"""Handler registration.

Handler-bearing components declare their handlers explicitly::

    class Dice(HandlerComponent):
        def declarations(self):
            return [on_message(r"roll d(\\d+)", self.roll, params=[UserId, RegexGroup(1)])]

The registry compiles each declaration into a HandlerDescriptor (pattern,
parameter plan) and adds it to the router. Any bad declaration raises a
RegistrationError, which is meant to abort startup.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from chatroute.core.binding import compile_plan
from chatroute.core.descriptors import (
    CATEGORY_EVENTS,
    WILDCARD,
    ActionRule,
    Category,
    HandlerDescriptor,
    ReactionRule,
    RegexRule,
    compile_pattern,
)
from chatroute.core.errors import RegistrationError
from chatroute.core.models import ReactionKind
from chatroute.core.router import EventRouter
from chatroute.transport.base import TransportAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerDeclaration:  # pylint: disable=too-many-instance-attributes
    """Uncompiled handler declaration, as listed by a component.

    Attributes:
        category: Event category to subscribe to
        target: Callable to invoke, usually a bound method
        pattern: Regex for message and thread handlers
        flags: ``re`` flags for ``pattern``
        code: Emoji code for reaction handlers
        kind: Reaction kind for reaction handlers
        action_name: Action name for action handlers
        action_value: Action value for action handlers, ``*`` for any
        params: Explicit parameter roles, or None to use annotations
        send_typing: Send a typing indicator before invoking
    """
    category: Category
    target: Callable[..., Any]
    pattern: Optional[Union[str, re.Pattern]] = None
    flags: int = 0
    code: Optional[str] = None
    kind: ReactionKind = ReactionKind.ADDED
    action_name: Optional[str] = None
    action_value: str = WILDCARD
    params: Optional[Sequence[Any]] = None
    send_typing: bool = False


def on_message(
    pattern: Union[str, re.Pattern],
    target: Callable[..., Any],
    params: Optional[Sequence[Any]] = None,
    send_typing: bool = False,
    flags: int = 0,
) -> HandlerDeclaration:
    """Declare a handler for channel messages fully matching ``pattern``."""
    return HandlerDeclaration(
        category=Category.MESSAGE,
        target=target,
        pattern=pattern,
        flags=flags,
        params=params,
        send_typing=send_typing,
    )


def on_thread_message(
    pattern: Union[str, re.Pattern],
    target: Callable[..., Any],
    params: Optional[Sequence[Any]] = None,
    flags: int = 0,
) -> HandlerDeclaration:
    """Declare a handler for thread replies fully matching ``pattern``."""
    return HandlerDeclaration(
        category=Category.THREAD_MESSAGE,
        target=target,
        pattern=pattern,
        flags=flags,
        params=params,
    )


def on_reaction(
    code: str,
    target: Callable[..., Any],
    kind: ReactionKind = ReactionKind.ADDED,
    params: Optional[Sequence[Any]] = None,
) -> HandlerDeclaration:
    """Declare a handler for reactions with exactly ``code``."""
    return HandlerDeclaration(
        category=Category.REACTION, target=target, code=code, kind=kind, params=params
    )


def on_action(
    name: str,
    target: Callable[..., Any],
    value: str = WILDCARD,
    params: Optional[Sequence[Any]] = None,
) -> HandlerDeclaration:
    """Declare a handler for action ``name``; ``value="*"`` matches any value."""
    return HandlerDeclaration(
        category=Category.ACTION,
        target=target,
        action_name=name,
        action_value=value,
        params=params,
    )


class HandlerComponent:
    """
    Interface for handler-bearing components.
    """

    def declarations(self) -> List[HandlerDeclaration]:
        """Return the handlers this component provides."""
        raise NotImplementedError


def _target_name(declaration: HandlerDeclaration) -> str:
    target = declaration.target
    return getattr(target, "__qualname__", repr(target))


class HandlerRegistry:
    """Compiles component declarations and feeds them to an EventRouter."""

    def __init__(self, router: EventRouter) -> None:
        self.router = router

    def compile(self, declaration: HandlerDeclaration) -> HandlerDescriptor:
        """Compile one declaration.

        Raises:
            InvalidPatternError: If the declared pattern does not compile
            UnboundParameterError: If a parameter cannot be bound
            RegistrationError: If the declaration lacks its match rule
        """
        name = _target_name(declaration)
        category = declaration.category
        accepts = (CATEGORY_EVENTS[category],)

        if category in (Category.MESSAGE, Category.THREAD_MESSAGE):
            if declaration.pattern is None:
                raise RegistrationError(f"Listener {name} declares no pattern")
            pattern = compile_pattern(declaration.pattern, declaration.flags)
            rule = RegexRule(pattern)
            plan = compile_plan(declaration.target, declaration.params, pattern, accepts)
        elif category is Category.REACTION:
            if not declaration.code:
                raise RegistrationError(f"Listener {name} declares no reaction code")
            rule = ReactionRule(declaration.code, declaration.kind)
            plan = compile_plan(declaration.target, declaration.params, accepts=accepts)
        else:
            if not declaration.action_name:
                raise RegistrationError(f"Listener {name} declares no action name")
            rule = ActionRule(declaration.action_name, declaration.action_value)
            plan = compile_plan(declaration.target, declaration.params, accepts=accepts)

        return HandlerDescriptor(
            category=category,
            rule=rule,
            plan=plan,
            target=declaration.target,
            name=name,
            send_typing=declaration.send_typing and category is Category.MESSAGE,
        )

    def register_component(self, component: HandlerComponent) -> List[HandlerDescriptor]:
        """Register every handler declared by ``component``."""
        return self.register_components([component])

    def register_components(
        self, components: Iterable[HandlerComponent]
    ) -> List[HandlerDescriptor]:
        """Compile all declarations, then add them to the router.

        Nothing is added unless every declaration compiles.
        """
        descriptors = [
            self.compile(declaration)
            for component in components
            for declaration in component.declarations()
        ]
        for descriptor in descriptors:
            logger.info(
                "Adding %s listener %s for %s",
                descriptor.category.value, descriptor.name, descriptor.rule,
            )
            self.router.add(descriptor)
        return descriptors

    def attach(self, transport: TransportAdapter) -> None:
        """Subscribe the router to every event category of ``transport``."""
        transport.on_message(self.router.handle_message)
        transport.on_thread_message(self.router.handle_thread_message)
        transport.on_reaction_added(self.router.handle_reaction_added)
        transport.on_reaction_removed(self.router.handle_reaction_removed)
        transport.on_action(self.router.handle_action)
