"""Compiled, immutable representation of declared command handlers.

Everything that can be wrong with a handler declaration (missing
capture-group markers, unsupported parameter types, patterns with too
few groups, owners that need constructor arguments) is detected here,
when the descriptor is built, and never deferred to dispatch time.
"""

import inspect
import re
import types
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Optional, Sequence, Tuple, Union, get_args, get_origin, get_type_hints

from ..exceptions import (
    HandlerConfigurationError,
    InvalidPatternError,
    MissingGroupParamError,
    UnconstructibleHandlerError,
    UnsupportedTypeError,
)
from .base import CommandSpec, Group, TriggerKind
from .coercion import ValueType, is_compatible, value_type_for

_UNION_TYPES = tuple(t for t in (Union, getattr(types, "UnionType", None)) if t is not None)


@dataclass(frozen=True)
class ParameterSpec:
    """One formal argument of a handler."""
    name: str
    group: int
    value_type: ValueType
    nullable: bool = False


@dataclass(frozen=True)
class CommandDescriptor:
    """A handler ready for dispatch.

    Attributes:
        kind: Trigger kind the handler answers.
        pattern: Compiled regular expression.
        parameters: Parameter specs in declaration order.
        name: Qualified handler name for logs and help output.
        factory: Zero-argument callable building a fresh owner instance.
        invoker: Callable ``(instance, *args)`` running the handler.
    """
    kind: TriggerKind
    pattern: re.Pattern
    parameters: Tuple[ParameterSpec, ...]
    name: str
    factory: Callable[[], Any]
    invoker: Callable[..., Any]

    def invoke(self, args: Sequence[Any]) -> Any:
        """Run the handler on a freshly constructed owner instance."""
        instance = self.factory()
        return self.invoker(instance, *args)


def compile_pattern(pattern: str, flags: int = 0, *, handler: Optional[str] = None) -> re.Pattern:
    """Compile a handler pattern, reporting failures as configuration errors."""
    try:
        return re.compile(pattern, flags)
    except (re.error, TypeError) as e:
        raise InvalidPatternError(
            f"invalid pattern {pattern!r}: {e}", handler=handler
        ) from e


def check_constructible(owner: type, *, handler: Optional[str] = None) -> None:
    """Ensure ``owner`` can be instantiated with no arguments."""
    if not isinstance(owner, type) or inspect.isabstract(owner):
        raise UnconstructibleHandlerError(
            f"{owner!r} is not a concrete class", handler=handler
        )
    try:
        signature = inspect.signature(owner)
    except (TypeError, ValueError) as e:
        raise UnconstructibleHandlerError(
            f"cannot inspect constructor of {owner.__qualname__}: {e}", handler=handler
        ) from e
    required = [
        p.name for p in signature.parameters.values()
        if p.default is inspect.Parameter.empty
        and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if required:
        raise UnconstructibleHandlerError(
            "classes containing commands must be constructible with no arguments",
            handler=handler,
            required=required,
        )


def check_groups(pattern: re.Pattern, parameters: Sequence[ParameterSpec], *, handler: Optional[str] = None) -> None:
    """Ensure every parameter's group exists in the compiled pattern."""
    for param in parameters:
        if param.group > pattern.groups:
            raise InvalidPatternError(
                f"parameter {param.name!r} reads group {param.group} but "
                f"pattern {pattern.pattern!r} has {pattern.groups}",
                handler=handler,
            )


def _split_annotation(hint: Any) -> Tuple[Any, Optional[Group], bool]:
    """Return (base type, Group marker, nullable) for a resolved hint."""
    nullable = False
    if get_origin(hint) in _UNION_TYPES:
        args = [a for a in get_args(hint) if a is not type(None)]
        nullable = len(args) < len(get_args(hint))
        if len(args) == 1:
            hint = args[0]
    group = None
    if get_origin(hint) is Annotated:
        base, *metadata = get_args(hint)
        group = next((m for m in metadata if isinstance(m, Group)), None)
        hint = base
        if get_origin(hint) in _UNION_TYPES:
            args = [a for a in get_args(hint) if a is not type(None)]
            nullable = nullable or len(args) < len(get_args(hint))
            if len(args) == 1:
                hint = args[0]
    return hint, group, nullable


def parameter_specs(func: Callable, *, skip_first: bool, handler: str) -> Tuple[ParameterSpec, ...]:
    """Derive ParameterSpecs from a handler's signature and annotations."""
    try:
        hints = get_type_hints(func, include_extras=True)
    except Exception as e:
        raise HandlerConfigurationError(
            f"cannot resolve annotations: {e}", handler=handler
        ) from e

    params = list(inspect.signature(func).parameters.values())
    if skip_first:
        params = params[1:]

    specs = []
    for param in params:
        if param.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            raise MissingGroupParamError(
                f"parameter {param.name!r} must be positional", handler=handler
            )
        base, group, nullable = _split_annotation(hints.get(param.name, inspect.Parameter.empty))
        if group is None:
            raise MissingGroupParamError(
                f"parameter {param.name!r} must be annotated with Group(n)",
                handler=handler,
            )
        if param.default is None:
            nullable = True
        if group.value_type is not None:
            if not is_compatible(group.value_type, base):
                raise UnsupportedTypeError(
                    f"parameter {param.name!r}: {group.value_type.name} does not fit "
                    f"{getattr(base, '__name__', base)!r}",
                    handler=handler,
                )
            value_type = group.value_type
        else:
            try:
                value_type = value_type_for(base)
            except UnsupportedTypeError as e:
                raise UnsupportedTypeError(
                    f"parameter {param.name!r}: {e.message}", handler=handler
                ) from None
        specs.append(ParameterSpec(
            name=param.name, group=group.index, value_type=value_type, nullable=nullable,
        ))
    return tuple(specs)


def build_descriptor(owner: type, attr_name: str, spec: CommandSpec) -> CommandDescriptor:
    """Build a descriptor for method ``attr_name`` declared on ``owner``.

    Raises:
        HandlerConfigurationError: (or a subclass) when the declaration
            is invalid.
    """
    handler = f"{owner.__module__}.{owner.__qualname__}.{attr_name}"
    raw = inspect.getattr_static(owner, attr_name)
    func = getattr(raw, "__func__", raw)
    skip_first = not isinstance(raw, staticmethod)

    check_constructible(owner, handler=handler)
    pattern = compile_pattern(spec.pattern, spec.flags, handler=handler)
    parameters = parameter_specs(func, skip_first=skip_first, handler=handler)
    check_groups(pattern, parameters, handler=handler)

    def invoker(instance, *args):
        return getattr(instance, attr_name)(*args)

    return CommandDescriptor(
        kind=spec.kind,
        pattern=pattern,
        parameters=parameters,
        name=handler,
        factory=owner,
        invoker=invoker,
    )
