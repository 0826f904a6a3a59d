"""Declaration surface for command handlers.

Handlers are plain methods on classes that can be built with no
arguments. A method becomes a command by decorating it with
listen_to() or respond_to(); each of its parameters names the capture
group that feeds it with a Group marker::

    class Greetings:
        @listen_to(r"^hello (\\w+)$")
        def hello(self, name: Annotated[str, Group(1)]):
            return f"Hello, {name}!"

Key classes:
    TriggerKind: Which chat events a handler considers.
    Group: Capture-group marker for typing.Annotated parameters.
    CommandSpec: Metadata attached to a decorated method.

Key functions:
    listen_to / respond_to: Decorators declaring a command.
    get_command_spec: Read the metadata back off a function.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from .coercion import ValueType

F = TypeVar("F", bound=Callable)

_SPEC_ATTR = "__tripwire_command__"


class TriggerKind(str, Enum):
    """Classification of chat events a handler responds to."""
    LISTEN = "listen"          # Any plain channel message
    RESPOND_TO = "respond_to"  # Mentions of the bot and direct messages


@dataclass(frozen=True)
class Group:
    """Binds a handler parameter to a numbered capture group.

    Attributes:
        index: Capture group number (0 is the whole match).
        value_type: Explicit target type. Defaults to the one implied
            by the parameter annotation (int -> LONG, float -> DOUBLE).
    """
    index: int
    value_type: Optional[ValueType] = None

    def __post_init__(self):
        if isinstance(self.index, bool) or not isinstance(self.index, int) or self.index < 0:
            raise ValueError(f"capture group index must be a non-negative int, got {self.index!r}")


@dataclass(frozen=True)
class CommandSpec:
    """Trigger metadata recorded by the decorators."""
    kind: TriggerKind
    pattern: str
    flags: int = 0


def _command(kind: TriggerKind, pattern: str, flags: int) -> Callable[[F], F]:
    if not isinstance(pattern, str):
        raise TypeError(f"pattern must be a string, got {type(pattern).__name__}")

    def decorator(func: F) -> F:
        setattr(func, _SPEC_ATTR, CommandSpec(kind=kind, pattern=pattern, flags=flags))
        return func

    return decorator


def listen_to(pattern: str, flags: int = 0) -> Callable[[F], F]:
    """Declare a handler for plain messages matching ``pattern``."""
    return _command(TriggerKind.LISTEN, pattern, flags)


def respond_to(pattern: str, flags: int = 0) -> Callable[[F], F]:
    """Declare a handler for mentions and direct messages matching ``pattern``."""
    return _command(TriggerKind.RESPOND_TO, pattern, flags)


def get_command_spec(obj) -> Optional[CommandSpec]:
    """Return the CommandSpec attached to a decorated function, if any."""
    func = getattr(obj, "__func__", obj)
    spec = getattr(func, _SPEC_ATTR, None)
    return spec if isinstance(spec, CommandSpec) else None
