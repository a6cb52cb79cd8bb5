"""Tests for registration-time parameter binding."""
import re
from typing import Annotated, Optional

import pytest

from chatroute.core.binding import (
    ChannelId,
    FullEvent,
    InvocationContext,
    MessageContent,
    RegexGroup,
    Role,
    ThreadId,
    UserId,
    build_arguments,
    compile_plan,
)
from chatroute.core.errors import UnboundParameterError
from chatroute.core.models import Event, Reaction, TextMessage, ThreadMessage


def _thread_ctx() -> InvocationContext:
    pattern = re.compile(r"roll d(\d+) (?P<times>\d+)x")
    event = ThreadMessage("1.1", "C1", "U1", "T9", "roll d20 3x")
    return InvocationContext(
        event=event,
        user_id="U1",
        content=event.content,
        match=pattern.fullmatch(event.content),
        thread_id="T9",
    )


def test_explicit_roles_bind_in_order():
    def handler(a, b, c, d, e, f, g):
        return a, b, c, d, e, f, g

    ctx = _thread_ctx()
    plan = compile_plan(
        handler,
        params=[
            UserId, MessageContent, ChannelId, ThreadId,
            RegexGroup(1), RegexGroup("times"), FullEvent,
        ],
        pattern=ctx.match.re,
    )

    assert len(plan) == 7
    assert build_arguments(plan, ctx) == ["U1", "roll d20 3x", "C1", "T9", "20", "3", ctx.event]


def test_roles_inferred_from_annotations():
    class Dice:
        def roll(
            self,
            user: Annotated[str, UserId],
            sides: Annotated[Optional[str], RegexGroup(1)],
            event: ThreadMessage,
        ):
            return user, sides, event

    ctx = _thread_ctx()
    plan = compile_plan(Dice().roll, pattern=ctx.match.re)

    assert build_arguments(plan, ctx) == ["U1", "20", ctx.event]


def test_event_union_annotation_binds_full_event():
    def handler(event: Event):
        return event

    ctx = _thread_ctx()
    assert build_arguments(compile_plan(handler), ctx) == [ctx.event]


def test_unannotated_parameter_is_registration_error():
    def handler(user: Annotated[str, UserId], other: int):
        return user, other

    with pytest.raises(UnboundParameterError, match="other"):
        compile_plan(handler)


def test_explicit_role_count_must_match_signature():
    def handler(user):
        return user

    with pytest.raises(UnboundParameterError, match="1 parameters"):
        compile_plan(handler, params=[UserId, ChannelId])


def test_explicit_non_role_is_rejected():
    def handler(user):
        return user

    with pytest.raises(UnboundParameterError):
        compile_plan(handler, params=[str])


def test_regex_group_outside_pattern_is_rejected():
    def handler(group):
        return group

    with pytest.raises(UnboundParameterError, match="group 2"):
        compile_plan(handler, params=[RegexGroup(2)], pattern=re.compile(r"(a)"))

    with pytest.raises(UnboundParameterError):
        compile_plan(handler, params=[RegexGroup("missing")], pattern=re.compile(r"(?P<x>a)"))


def test_variadic_parameters_cannot_be_bound():
    def handler(*args):
        return args

    with pytest.raises(UnboundParameterError, match="variadic"):
        compile_plan(handler, params=[])


def test_message_roles_are_none_for_reactions():
    def handler(content, group, thread, channel):
        return content, group, thread, channel

    plan = compile_plan(handler, params=[MessageContent, RegexGroup(1), ThreadId, ChannelId])
    event = Reaction("1.1", "C1", "U2", "thumbsup")
    ctx = InvocationContext(event=event, user_id="U2")

    assert build_arguments(plan, ctx) == [None, None, None, "C1"]


def test_plain_message_has_no_thread_id():
    def handler(thread):
        return thread

    plan = compile_plan(handler, params=[ThreadId])
    event = TextMessage("1.1", "C1", "U1", "hi")
    ctx = InvocationContext(event=event, user_id="U1", content="hi")

    assert build_arguments(plan, ctx) == [None]


def test_role_without_extractor_is_registration_error():
    def handler(value):
        return value

    with pytest.raises(UnboundParameterError, match="Placeholder"):
        compile_plan(handler, params=[Role("Placeholder")])
