"""Compiled handler descriptors and their match rules."""
import enum
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union

from chatroute.core.binding import Binder
from chatroute.core.errors import InvalidPatternError
from chatroute.core.models import Action, Reaction, ReactionKind, TextMessage, ThreadMessage

WILDCARD = "*"


class Category(enum.Enum):
    MESSAGE = "message"
    THREAD_MESSAGE = "thread_message"
    REACTION = "reaction"
    ACTION = "action"


# Event type delivered to handlers of each category
CATEGORY_EVENTS = {
    Category.MESSAGE: TextMessage,
    Category.THREAD_MESSAGE: ThreadMessage,
    Category.REACTION: Reaction,
    Category.ACTION: Action,
}


@dataclass(frozen=True)
class RegexRule:
    """Whole-string regular expression match on message text."""
    pattern: re.Pattern

    def match(self, text: Optional[str]) -> Optional[re.Match]:
        if text is None:
            return None
        return self.pattern.fullmatch(text)

    def __str__(self) -> str:
        return self.pattern.pattern


@dataclass(frozen=True)
class ReactionRule:
    """Exact emoji code match for one reaction kind."""
    code: str
    kind: ReactionKind = ReactionKind.ADDED

    def matches(self, code: str) -> bool:
        return code == self.code

    def __str__(self) -> str:
        return f":{self.code}: {self.kind.value}"


@dataclass(frozen=True)
class ActionRule:
    """Action name match with an exact or wildcard value."""
    name: str
    value: str = WILDCARD

    def matches(self, name: str, value: str) -> bool:
        if name != self.name:
            return False
        return self.value == WILDCARD or value == self.value

    def __str__(self) -> str:
        return f"{self.name}.{self.value}"


MatchRule = Union[RegexRule, ReactionRule, ActionRule]


@dataclass(frozen=True)
class HandlerDescriptor:
    """One registered handler, compiled and immutable.

    Attributes:
        category: Event category the handler is subscribed to
        rule: Match rule for that category
        plan: One binder per parameter of ``target``
        target: Bound handler callable
        name: Qualified name used in logs
        send_typing: Send a typing indicator before invoking
    """
    category: Category
    rule: MatchRule
    plan: Tuple[Binder, ...]
    target: Callable[..., Any]
    name: str
    send_typing: bool = False


def compile_pattern(pattern: Union[str, re.Pattern], flags: int = 0) -> re.Pattern:
    """Compile a handler pattern.

    Raises:
        InvalidPatternError: If ``pattern`` is not a valid regular expression
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise InvalidPatternError(f"Invalid handler pattern {pattern!r}: {e}") from e
