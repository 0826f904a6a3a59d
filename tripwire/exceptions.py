"""Custom exception hierarchy for tripwire.

Separates programming mistakes in registered handlers (configuration
errors) from expected, recoverable outcomes (coercion failures) and
from delivery problems (transport errors), so each can be handled at
the right layer.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (network hiccup, Slack 5xx)
    PERMANENT = "permanent"          # Not worth retrying (bad input)
    INFRASTRUCTURE = "infrastructure"  # Broken handler code, missing tokens


class TripwireError(Exception):
    """Base exception for all tripwire errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "commands.registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(TripwireError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


class HandlerConfigurationError(ConfigurationError):
    """A registered command handler is declared incorrectly.

    Attributes:
        handler: Qualified name of the offending handler (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        handler: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.handler = handler
        if handler is not None:
            context["handler"] = handler
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


class MissingGroupParamError(HandlerConfigurationError):
    """A handler parameter has no capture-group marker."""


class UnconstructibleHandlerError(HandlerConfigurationError):
    """A handler's owning class cannot be built without arguments."""


class UnsupportedTypeError(HandlerConfigurationError):
    """A handler parameter is annotated with a type that cannot be coerced."""


class InvalidPatternError(HandlerConfigurationError):
    """A handler pattern does not compile or has too few capture groups."""


class InvalidReturnTypeError(HandlerConfigurationError):
    """A handler returned something other than text, an attachment or None.

    Attributes:
        return_type: Name of the offending return value's type.
    """

    def __init__(
        self,
        message: str = "",
        *,
        return_type: Optional[str] = None,
        handler: Optional[str] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.return_type = return_type
        super().__init__(
            message,
            handler=handler,
            module=module or "commands.dispatcher",
            return_type=return_type,
            **context,
        )


class RegistryFrozenError(ConfigurationError):
    """A command was registered after the registry had been built."""

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message, module="commands.registry", **context)


# ---------------------------------------------------------------------------
# Coercion exceptions
# ---------------------------------------------------------------------------

class CoercionError(TripwireError):
    """Captured text could not be converted to the declared type.

    Expected during dispatch: the candidate simply does not match.

    Attributes:
        raw: The captured text (None when the group did not participate).
        value_type: Name of the target value type.
    """

    def __init__(
        self,
        message: str = "",
        *,
        raw: Optional[str] = None,
        value_type: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.raw = raw
        self.value_type = value_type
        super().__init__(
            message,
            category=ErrorCategory.PERMANENT,
            module="commands.coercion",
            raw=raw,
            value_type=value_type,
            **context,
        )


# ---------------------------------------------------------------------------
# Transport exceptions
# ---------------------------------------------------------------------------

class TransportError(TripwireError):
    """Error talking to the chat network.

    Attributes:
        method: The API method that failed (e.g. "chat.postMessage").
        slack_error: Error code returned by Slack (if any).
    """

    def __init__(
        self,
        message: str = "",
        *,
        method: Optional[str] = None,
        slack_error: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.method = method
        self.slack_error = slack_error
        if method is not None:
            context["method"] = method
        if slack_error is not None:
            context["slack_error"] = slack_error
        super().__init__(
            message, category=category, module=module or "transport", **context
        )
