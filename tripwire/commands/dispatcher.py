"""Routing of incoming messages to the first eligible command.

Selection policy: candidates of the requested trigger kind are tried in
registry order; the first whose pattern is found in the message AND
whose every argument coerces is selected. A candidate whose pattern
matches but whose arguments do not coerce is skipped and the scan
continues. There is no scoring.

Key classes:
    Dispatcher: resolve() and dispatch() against a CommandRegistry.
    MatchResult: Selected descriptor plus coerced arguments.
    PlainText / RichAttachment / NoResponse: Outbound directives.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import structlog

from ..exceptions import InvalidReturnTypeError
from ..transport.base import Attachment
from .base import TriggerKind
from .coercion import coerce
from .descriptor import CommandDescriptor
from .registry import CommandRegistry

logger = structlog.get_logger("tripwire.commands")


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class RichAttachment:
    attachment: Attachment


@dataclass(frozen=True)
class NoResponse:
    pass


NO_RESPONSE = NoResponse()

OutboundDirective = Union[PlainText, RichAttachment, NoResponse]


@dataclass(frozen=True)
class MatchResult:
    """The selected descriptor and its coerced arguments."""
    descriptor: CommandDescriptor
    args: Tuple[Any, ...]


def _coerce_arguments(descriptor: CommandDescriptor, message: str) -> Optional[Tuple[Any, ...]]:
    """Search the message and coerce every parameter, or return None."""
    match = descriptor.pattern.search(message)
    if match is None:
        return None
    args = []
    for param in descriptor.parameters:
        result = coerce(match.group(param.group), param.value_type, param.nullable)
        if not result.ok:
            logger.debug(
                "command_argument_rejected",
                handler=descriptor.name,
                parameter=param.name,
                reason=result.error.message,
            )
            return None
        args.append(result.value)
    return tuple(args)


def interpret(value: Any, *, handler: Optional[str] = None) -> OutboundDirective:
    """Translate a handler's return value into an outbound directive.

    Raises:
        InvalidReturnTypeError: the value is neither text, an
            Attachment nor None.
    """
    if value is None:
        return NO_RESPONSE
    if isinstance(value, str):
        return PlainText(value)
    if isinstance(value, Attachment):
        return RichAttachment(value)
    raise InvalidReturnTypeError(
        "command methods must return str, Attachment or None",
        return_type=type(value).__name__,
        handler=handler,
    )


class Dispatcher:
    """Finds and runs the command for a message.

    Args:
        registry: Source of descriptors; built on first use.
    """

    def __init__(self, registry: CommandRegistry):
        self.registry = registry

    def resolve(self, message: str, kind: TriggerKind) -> Optional[MatchResult]:
        """Return the first eligible command for ``message``, if any."""
        for descriptor in self.registry.descriptors_for(kind):
            args = _coerce_arguments(descriptor, message)
            if args is not None:
                return MatchResult(descriptor=descriptor, args=args)
        return None

    async def dispatch(self, message: str, kind: TriggerKind) -> OutboundDirective:
        """Run the first eligible command and interpret its result.

        Handlers may be plain or ``async`` methods. Exceptions raised by
        the handler, and InvalidReturnTypeError, propagate to the caller.
        """
        result = self.resolve(message, kind)
        if result is None:
            return NO_RESPONSE

        descriptor = result.descriptor
        logger.info("command_matched", handler=descriptor.name, kind=kind.value)
        value = descriptor.invoke(result.args)
        if inspect.isawaitable(value):
            value = await value
        return interpret(value, handler=descriptor.name)
