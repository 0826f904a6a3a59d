"""Command registry and dispatch engine for tripwire.

Provides the listen_to/respond_to decorators and Group marker for
declaring handlers, the CommandRegistry that compiles them once, and
the Dispatcher that routes messages to the first eligible handler.
"""

from .base import CommandSpec, Group, TriggerKind, listen_to, respond_to
from .coercion import ValueType, coerce
from .descriptor import CommandDescriptor, ParameterSpec
from .dispatcher import (
    NO_RESPONSE,
    Dispatcher,
    MatchResult,
    NoResponse,
    OutboundDirective,
    PlainText,
    RichAttachment,
)
from .registry import CommandRegistry, RegistrationFailure, get_registry, set_registry

__all__ = [
    "CommandDescriptor",
    "CommandRegistry",
    "CommandSpec",
    "Dispatcher",
    "Group",
    "MatchResult",
    "NO_RESPONSE",
    "NoResponse",
    "OutboundDirective",
    "ParameterSpec",
    "PlainText",
    "RegistrationFailure",
    "RichAttachment",
    "TriggerKind",
    "ValueType",
    "coerce",
    "get_registry",
    "listen_to",
    "respond_to",
    "set_registry",
]
