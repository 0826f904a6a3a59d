"""Tests for message dispatch and match resolution."""

from typing import Annotated, Optional

import pytest

from tripwire.commands.base import Group, TriggerKind, listen_to, respond_to
from tripwire.commands.coercion import ValueType
from tripwire.commands.dispatcher import (
    NO_RESPONSE,
    Dispatcher,
    NoResponse,
    PlainText,
    RichAttachment,
    interpret,
)
from tripwire.commands.registry import CommandRegistry
from tripwire.exceptions import InvalidReturnTypeError
from tripwire.transport.base import Attachment


def _dispatcher(make_module, *classes):
    return Dispatcher(CommandRegistry([make_module(*classes)]))


@pytest.mark.asyncio
async def test_hello_world_binds_group_to_string(make_module):
    calls = []

    class Greetings:
        @listen_to(r"^hello (\w+)$")
        def hello(self, name: Annotated[str, Group(1)]):
            calls.append(name)
            return f"Hello, {name}!"

    dispatcher = _dispatcher(make_module, Greetings)

    assert await dispatcher.dispatch("hello world", TriggerKind.LISTEN) == PlainText("Hello, world!")
    assert calls == ["world"]


@pytest.mark.asyncio
async def test_pattern_miss_gives_no_response(make_module):
    class Greetings:
        @listen_to(r"^hello (\w+)$")
        def hello(self, name: Annotated[str, Group(1)]):
            raise AssertionError("should not be invoked")

    dispatcher = _dispatcher(make_module, Greetings)

    assert await dispatcher.dispatch("hello", TriggerKind.LISTEN) is NO_RESPONSE


@pytest.mark.asyncio
async def test_integer_argument_and_coercion_fallthrough(make_module):
    class Math:
        @listen_to(r"^add (\d+)$")
        def add(self, n: Annotated[int, Group(1, ValueType.INT)]):
            return f"int:{n + 1}"

        @listen_to(r"^add (\w+)$")
        def add_word(self, word: Annotated[str, Group(1)]):
            return f"word:{word}"

    dispatcher = _dispatcher(make_module, Math)

    assert await dispatcher.dispatch("add 5", TriggerKind.LISTEN) == PlainText("int:6")
    assert await dispatcher.dispatch("add five", TriggerKind.LISTEN) == PlainText("word:five")


@pytest.mark.asyncio
async def test_match_with_failing_coercion_is_never_selected(make_module):
    class Flags:
        @listen_to(r"^set (\w+)$")
        def set_flag(self, value: Annotated[bool, Group(1)]):
            raise AssertionError("should not be invoked")

    dispatcher = _dispatcher(make_module, Flags)

    assert dispatcher.resolve("set maybe", TriggerKind.LISTEN) is None
    assert await dispatcher.dispatch("set maybe", TriggerKind.LISTEN) is NO_RESPONSE


@pytest.mark.asyncio
async def test_out_of_range_value_falls_through(make_module):
    class Volume:
        @listen_to(r"^volume (\d+)$")
        def small(self, level: Annotated[int, Group(1, ValueType.BYTE)]):
            return f"byte:{level}"

        @listen_to(r"^volume (\d+)$")
        def large(self, level: Annotated[int, Group(1)]):
            return f"long:{level}"

    dispatcher = _dispatcher(make_module, Volume)

    assert await dispatcher.dispatch("volume 100", TriggerKind.LISTEN) == PlainText("byte:100")
    assert await dispatcher.dispatch("volume 1000", TriggerKind.LISTEN) == PlainText("long:1000")


@pytest.mark.asyncio
async def test_first_registered_wins(make_module):
    invoked = []

    class P1:
        @respond_to("ping")
        def ping(self):
            invoked.append("P1")
            return "P1"

    class P2:
        @respond_to("ping")
        def ping(self):
            invoked.append("P2")
            return "P2"

    dispatcher = Dispatcher(CommandRegistry([make_module(P1, P2)]))

    for _ in range(5):
        assert await dispatcher.dispatch("ping", TriggerKind.RESPOND_TO) == PlainText("P1")
    assert invoked == ["P1"] * 5


@pytest.mark.asyncio
async def test_kinds_are_kept_apart(make_module):
    class Handlers:
        @listen_to("ping")
        def heard(self):
            return "heard"

        @respond_to("ping")
        def answered(self):
            return "answered"

    dispatcher = _dispatcher(make_module, Handlers)

    assert await dispatcher.dispatch("ping", TriggerKind.LISTEN) == PlainText("heard")
    assert await dispatcher.dispatch("ping", TriggerKind.RESPOND_TO) == PlainText("answered")


@pytest.mark.asyncio
async def test_search_is_not_anchored(make_module):
    class Handlers:
        @respond_to(r"deploy (\w+)")
        def deploy(self, target: Annotated[str, Group(1)]):
            return target

    dispatcher = _dispatcher(make_module, Handlers)

    assert await dispatcher.dispatch("<@U1> please deploy staging now", TriggerKind.RESPOND_TO) == PlainText("staging")


@pytest.mark.asyncio
async def test_arguments_follow_parameter_order(make_module):
    class Handlers:
        @listen_to(r"^(\w+) -> (\w+)$")
        def swap(
            self,
            right: Annotated[str, Group(2)],
            left: Annotated[str, Group(1)],
            whole: Annotated[str, Group(0)],
            again: Annotated[str, Group(2)],
        ):
            return "|".join([right, left, whole, again])

    dispatcher = _dispatcher(make_module, Handlers)

    assert await dispatcher.dispatch("a -> b", TriggerKind.LISTEN) == PlainText("b|a|a -> b|b")


@pytest.mark.asyncio
async def test_optional_group_absent_gives_none(make_module):
    class Handlers:
        @listen_to(r"^roll(?: (\d+))?$")
        def roll(self, sides: Annotated[Optional[int], Group(1)]):
            return f"sides={sides}"

        @listen_to(r"^need(?: (\d+))?$")
        def need(self, sides: Annotated[int, Group(1)]):
            return f"need={sides}"

    dispatcher = _dispatcher(make_module, Handlers)

    assert await dispatcher.dispatch("roll", TriggerKind.LISTEN) == PlainText("sides=None")
    assert await dispatcher.dispatch("roll 20", TriggerKind.LISTEN) == PlainText("sides=20")
    assert await dispatcher.dispatch("need", TriggerKind.LISTEN) is NO_RESPONSE


@pytest.mark.asyncio
async def test_empty_string_capture_is_passed_through(make_module):
    class Echo:
        @listen_to(r"^echo (.*)$")
        def echo(self, text: Annotated[str, Group(1)]):
            return f"[{text}]"

    dispatcher = _dispatcher(make_module, Echo)

    assert await dispatcher.dispatch("echo ", TriggerKind.LISTEN) == PlainText("[]")
    assert await dispatcher.dispatch("echo hi", TriggerKind.LISTEN) == PlainText("[hi]")


@pytest.mark.asyncio
async def test_attachment_result(make_module):
    class Handlers:
        @respond_to("status")
        def status(self):
            return Attachment(title="All good", color="good")

    directive = await _dispatcher(make_module, Handlers).dispatch("status", TriggerKind.RESPOND_TO)

    assert isinstance(directive, RichAttachment)
    assert directive.attachment.title == "All good"


@pytest.mark.asyncio
async def test_none_result_gives_no_response(make_module):
    class Handlers:
        @listen_to("quiet")
        def quiet(self):
            return None

    directive = await _dispatcher(make_module, Handlers).dispatch("quiet", TriggerKind.LISTEN)
    assert isinstance(directive, NoResponse)


@pytest.mark.asyncio
async def test_invalid_return_type_raises(make_module):
    class Handlers:
        @listen_to("number")
        def number(self):
            return 42

        @listen_to("fine")
        def fine(self):
            return "fine"

    dispatcher = _dispatcher(make_module, Handlers)

    with pytest.raises(InvalidReturnTypeError) as exc_info:
        await dispatcher.dispatch("number", TriggerKind.LISTEN)
    assert exc_info.value.return_type == "int"

    # Subsequent messages are unaffected
    assert await dispatcher.dispatch("fine", TriggerKind.LISTEN) == PlainText("fine")


@pytest.mark.asyncio
async def test_async_handlers_are_awaited(make_module):
    class Handlers:
        @respond_to(r"^echo (.+)$")
        async def echo(self, text: Annotated[str, Group(1)]):
            return text.upper()

    directive = await _dispatcher(make_module, Handlers).dispatch("echo hi", TriggerKind.RESPOND_TO)
    assert directive == PlainText("HI")


@pytest.mark.asyncio
async def test_each_dispatch_uses_a_fresh_instance(make_module):
    class Counter:
        def __init__(self):
            self.count = 0

        @listen_to("count")
        def count_up(self):
            self.count += 1
            return str(self.count)

    dispatcher = _dispatcher(make_module, Counter)

    assert await dispatcher.dispatch("count", TriggerKind.LISTEN) == PlainText("1")
    assert await dispatcher.dispatch("count", TriggerKind.LISTEN) == PlainText("1")


def test_resolve_returns_coerced_arguments(make_module):
    class Handlers:
        @listen_to(r"^at (\d+\.\d+) (true|false)$")
        def at(self, x: Annotated[float, Group(1)], flag: Annotated[bool, Group(2)]):
            return None

    result = _dispatcher(make_module, Handlers).resolve("at 1.5 true", TriggerKind.LISTEN)

    assert result.args == (1.5, True)
    assert result.descriptor.name.endswith("Handlers.at")


def test_interpret_values():
    assert interpret("hi") == PlainText("hi")
    assert interpret(None) is NO_RESPONSE
    with pytest.raises(InvalidReturnTypeError):
        interpret(3.5)
