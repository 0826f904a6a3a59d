"""Conversion of captured text into typed handler arguments.

Coercion never raises for bad input: it returns either Coerced or
CoercionFailed so the dispatcher can tell "this candidate does not
match" apart from a genuine configuration error.

Key classes:
    ValueType: Closed set of primitive types a parameter may declare.
    Coerced: Successful conversion carrying the value.
    CoercionFailed: Failed conversion carrying a CoercionError.

Key functions:
    coerce: Convert one raw capture according to a ValueType.
    value_type_for: Default ValueType for a Python annotation.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from ..exceptions import CoercionError, UnsupportedTypeError

_INTEGER = re.compile(r"[+-]?[0-9]+")
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class ValueType(Enum):
    """Primitive types a handler parameter can be coerced into."""
    BYTE = "byte"
    SHORT = "short"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    STRING = "string"

    @property
    def bounds(self) -> Optional[tuple]:
        """Inclusive signed range for integer types, None otherwise."""
        bits = _INTEGER_BITS.get(self)
        if bits is None:
            return None
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


_INTEGER_BITS = {
    ValueType.BYTE: 8,
    ValueType.SHORT: 16,
    ValueType.INT: 32,
    ValueType.LONG: 64,
}

# Annotation -> default value type. bool before int: bool is an int subclass.
_DEFAULT_TYPES = {
    bool: ValueType.BOOLEAN,
    int: ValueType.LONG,
    float: ValueType.DOUBLE,
    str: ValueType.STRING,
}

# Python types each ValueType may be declared against.
_COMPATIBLE = {
    ValueType.BYTE: int,
    ValueType.SHORT: int,
    ValueType.INT: int,
    ValueType.LONG: int,
    ValueType.FLOAT: float,
    ValueType.DOUBLE: float,
    ValueType.BOOLEAN: bool,
    ValueType.STRING: str,
}


@dataclass(frozen=True)
class Coerced:
    """A successful coercion."""
    value: Any

    ok = True


@dataclass(frozen=True)
class CoercionFailed:
    """A failed coercion; the candidate does not match."""
    error: CoercionError

    ok = False

    def unwrap(self):
        raise self.error


CoercionResult = Union[Coerced, CoercionFailed]


def _fail(raw: Optional[str], value_type: ValueType, reason: str) -> CoercionFailed:
    return CoercionFailed(
        CoercionError(reason, raw=raw, value_type=value_type.value)
    )


def _to_integer(raw: str, value_type: ValueType) -> CoercionResult:
    if not _INTEGER.fullmatch(raw):
        return _fail(raw, value_type, "not a base-10 integer")
    value = int(raw)
    low, high = value_type.bounds
    if not low <= value <= high:
        return _fail(raw, value_type, f"out of range [{low}, {high}]")
    return Coerced(value)


def _to_decimal(raw: str, value_type: ValueType) -> CoercionResult:
    if not _DECIMAL.fullmatch(raw):
        return _fail(raw, value_type, "not a base-10 number")
    return Coerced(float(raw))


def _to_boolean(raw: str, value_type: ValueType) -> CoercionResult:
    if raw == "true":
        return Coerced(True)
    if raw == "false":
        return Coerced(False)
    return _fail(raw, value_type, "expected 'true' or 'false'")


def _to_string(raw: str, value_type: ValueType) -> CoercionResult:
    return Coerced(raw)


_CONVERTERS: Dict[ValueType, Callable[[str, ValueType], CoercionResult]] = {
    ValueType.BYTE: _to_integer,
    ValueType.SHORT: _to_integer,
    ValueType.INT: _to_integer,
    ValueType.LONG: _to_integer,
    ValueType.FLOAT: _to_decimal,
    ValueType.DOUBLE: _to_decimal,
    ValueType.BOOLEAN: _to_boolean,
    ValueType.STRING: _to_string,
}


def coerce(raw: Optional[str], value_type: ValueType, nullable: bool = False) -> CoercionResult:
    """Convert a captured fragment into a value of ``value_type``.

    A group that did not participate (``None``) yields ``Coerced(None)``
    when nullable and a failure otherwise. Empty text is treated the
    same way except for STRING, where it is the captured value.

    Raises:
        UnsupportedTypeError: ``value_type`` is not a ValueType member.
    """
    converter = _CONVERTERS.get(value_type) if isinstance(value_type, ValueType) else None
    if converter is None:
        raise UnsupportedTypeError(f"{value_type!r} is not allowed as parameter")
    if raw is None or (raw == "" and value_type is not ValueType.STRING):
        if nullable:
            return Coerced(None)
        return _fail(raw, value_type, "missing value for non-nullable parameter")
    return converter(raw, value_type)


def value_type_for(annotation: Any) -> ValueType:
    """Return the default ValueType for a plain Python annotation.

    Raises:
        UnsupportedTypeError: the annotation has no coercion.
    """
    try:
        return _DEFAULT_TYPES[annotation]
    except (KeyError, TypeError):
        raise UnsupportedTypeError(
            f"{getattr(annotation, '__name__', annotation)!r} is not allowed as parameter"
        ) from None


def is_compatible(value_type: ValueType, annotation: Any) -> bool:
    """Whether an explicit ValueType agrees with the Python annotation."""
    return _COMPATIBLE.get(value_type) is annotation
