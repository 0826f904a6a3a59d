"""Command registry: discovery and one-time compilation of handlers.

The registry collects CommandDescriptors from two places, in this
order:

1. Explicit register() calls, in call order.
2. Decorated methods found in the handler modules, in module order,
   then class definition order, then method definition order.

The resulting tuple is built exactly once per registry (guarded by a
lock so racing dispatches cannot build twice) and is read-only
afterwards. Its order is the dispatch tie-break. Handler modules may
call register() while build() imports them; those registrations count
as explicit ones.

A handler whose declaration is invalid is logged, recorded in
``errors`` and skipped; it never stops the others from registering.
"""

import threading
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from ..exceptions import (
    ConfigurationError,
    HandlerConfigurationError,
    RegistryFrozenError,
    UnconstructibleHandlerError,
    UnsupportedTypeError,
)
from .base import CommandSpec, TriggerKind, get_command_spec
from .coercion import ValueType
from .descriptor import (
    CommandDescriptor,
    ParameterSpec,
    build_descriptor,
    check_groups,
    compile_pattern,
)

logger = structlog.get_logger("tripwire.commands")

ModuleSource = Union[Iterable[ModuleType], Callable[[], Iterable[ModuleType]]]


@dataclass(frozen=True)
class RegistrationFailure:
    """A handler that was left out of the registry."""
    name: str
    error: Exception


class CommandRegistry:
    """Ordered, immutable-once-built collection of command descriptors.

    Args:
        sources: Handler modules to scan, or a zero-argument callable
            returning them (called once, during build()).
    """

    def __init__(self, sources: ModuleSource = ()):
        self._sources = sources
        self._explicit: List[CommandDescriptor] = []
        self._errors: List[RegistrationFailure] = []
        self._descriptors: Optional[Tuple[CommandDescriptor, ...]] = None
        self._by_kind: Dict[TriggerKind, Tuple[CommandDescriptor, ...]] = {}
        self._building = False
        # Reentrant: handler modules imported by build() may call register()
        self._lock = threading.RLock()

    @property
    def is_built(self) -> bool:
        return self._descriptors is not None

    @property
    def errors(self) -> Tuple[RegistrationFailure, ...]:
        """Handlers rejected so far, with the reason."""
        return tuple(self._errors)

    def register(
        self,
        kind: TriggerKind,
        pattern: str,
        parameters: Sequence[ParameterSpec],
        factory: Callable[[], Any],
        invoker: Callable[..., Any],
        *,
        name: Optional[str] = None,
        flags: int = 0,
    ) -> CommandDescriptor:
        """Register a handler from explicit metadata.

        Args:
            kind: Trigger kind to answer.
            pattern: Regular expression searched in each message.
            parameters: One ParameterSpec per handler argument, in the
                order the invoker expects them.
            factory: Zero-argument callable returning a fresh owner.
            invoker: Callable ``(instance, *args)``.
            name: Label for logs; defaults to the invoker's qualname.
            flags: ``re`` flags for the pattern.

        Raises:
            HandlerConfigurationError: the metadata is invalid.
            RegistryFrozenError: build() has already run.
        """
        name = name or getattr(invoker, "__qualname__", repr(invoker))
        try:
            if not isinstance(kind, TriggerKind):
                raise HandlerConfigurationError(f"unknown trigger kind {kind!r}", handler=name)
            if not callable(factory) or not callable(invoker):
                raise UnconstructibleHandlerError("factory and invoker must be callable", handler=name)
            compiled = compile_pattern(pattern, flags, handler=name)
            for param in parameters:
                if not isinstance(param.value_type, ValueType):
                    raise UnsupportedTypeError(
                        f"{param.value_type!r} is not allowed as parameter", handler=name
                    )
            check_groups(compiled, parameters, handler=name)
        except HandlerConfigurationError as e:
            self._errors.append(RegistrationFailure(name=name, error=e))
            logger.error(
                "command_registration_failed",
                handler=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        descriptor = CommandDescriptor(
            kind=kind,
            pattern=compiled,
            parameters=tuple(parameters),
            name=name,
            factory=factory,
            invoker=invoker,
        )
        with self._lock:
            if self._descriptors is not None:
                raise RegistryFrozenError(
                    "cannot register commands after the registry is built", handler=name
                )
            self._explicit.append(descriptor)
        logger.debug("command_registered", handler=name, kind=kind.value, pattern=pattern)
        return descriptor

    def build(self) -> Tuple[CommandDescriptor, ...]:
        """Return the descriptor sequence, building it on first call."""
        descriptors = self._descriptors
        if descriptors is not None:
            return descriptors
        with self._lock:
            if self._descriptors is None:
                if self._building:
                    raise ConfigurationError(
                        "command registry used while it is being built",
                        module="commands.registry",
                    )
                self._building = True
                try:
                    found = self._discover()
                finally:
                    self._building = False
                discovered = list(self._explicit) + found
                self._by_kind = {
                    kind: tuple(d for d in discovered if d.kind == kind)
                    for kind in TriggerKind
                }
                self._descriptors = tuple(discovered)
                logger.info(
                    "command_registry_built",
                    commands=len(self._descriptors),
                    listen=len(self._by_kind[TriggerKind.LISTEN]),
                    respond_to=len(self._by_kind[TriggerKind.RESPOND_TO]),
                    failed=len(self._errors),
                )
            return self._descriptors

    def descriptors_for(self, kind: TriggerKind) -> Tuple[CommandDescriptor, ...]:
        """Descriptors of one trigger kind, in registry order."""
        self.build()
        return self._by_kind.get(kind, ())

    def __iter__(self):
        return iter(self.build())

    def __len__(self) -> int:
        return len(self.build())

    def _modules(self) -> List[ModuleType]:
        sources = self._sources() if callable(self._sources) else self._sources
        return list(sources)

    def _discover(self) -> List[CommandDescriptor]:
        found: List[CommandDescriptor] = []
        for module in self._modules():
            for owner in vars(module).values():
                if not isinstance(owner, type) or owner.__module__ != module.__name__:
                    continue
                for attr_name, spec in _declared_commands(owner):
                    self._add(found, owner, attr_name, spec)
        return found

    def _add(self, found: List[CommandDescriptor], owner: type, attr_name: str, spec: CommandSpec) -> None:
        name = f"{owner.__module__}.{owner.__qualname__}.{attr_name}"
        try:
            found.append(build_descriptor(owner, attr_name, spec))
        except Exception as e:
            self._errors.append(RegistrationFailure(name=name, error=e))
            logger.error(
                "command_registration_failed",
                handler=name,
                error=str(e),
                error_type=type(e).__name__,
            )


def _declared_commands(owner: type) -> Iterable[Tuple[str, CommandSpec]]:
    """Yield (attribute name, spec) for decorated methods, definition order."""
    seen = set()
    for klass in owner.__mro__:
        if klass is object:
            continue
        for attr_name, attr in vars(klass).items():
            if attr_name in seen:
                continue
            seen.add(attr_name)
            spec = get_command_spec(attr)
            if spec is not None:
                yield attr_name, spec


# Global registry instance
_registry: Optional[CommandRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> CommandRegistry:
    """Get or create the process-wide registry from the global config."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                from ..config import get_config
                from .loader import HandlerLoader

                loader = HandlerLoader.from_config(get_config())
                _registry = CommandRegistry(loader.load)
    return _registry


def set_registry(registry: Optional[CommandRegistry]) -> None:
    """Install (or with None, forget) the process-wide registry."""
    global _registry
    with _registry_lock:
        _registry = registry
