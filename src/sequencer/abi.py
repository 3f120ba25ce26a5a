"""Calldata from a function signature and JSON arguments.

Accepts both the canonical form ``transfer(address,uint256)`` and the
human-readable form ``function transfer(address to, uint256 amount)``.
Parameter names are stripped here; type normalization and validation are
left to ``eth_abi.grammar``.
"""

import re
from typing import Any

from eth_abi import encode as abi_encode
from eth_abi.exceptions import ABITypeError, EncodingError, ParseError
from eth_abi.grammar import ABIType, TupleType, normalize, parse
from eth_utils import function_signature_to_4byte_selector

from sequencer.errors import ValidationError

_SIGNATURE = re.compile(
    r"^\s*(?:function\s+)?([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*)\)"
    r"(?:\s+(?:external|public|payable|nonpayable|view|pure))*\s*$",
    re.S,
)
_ARRAY_SUFFIX = re.compile(r"(?:\[\d*\])*")


def _split_top_level(params: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in params:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValidationError("Unbalanced parentheses in function signature")
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    if depth != 0:
        raise ValidationError("Unbalanced parentheses in function signature")
    return parts


def _matching_paren(param: str) -> int:
    depth = 0
    for i, ch in enumerate(param):
        depth += ch == "("
        depth -= ch == ")"
        if depth == 0:
            return i
    raise ValidationError(f"Malformed tuple parameter: {param!r}")


def _strip_names(param: str) -> str:
    """``(uint a, bool b)[] pairs`` -> ``(uint,bool)[]``"""
    param = param.strip()
    if not param:
        raise ValidationError("Empty parameter in function signature")
    if param.startswith("tuple("):
        param = param[len("tuple"):]
    if not param.startswith("("):
        return param.split()[0]
    close = _matching_paren(param)
    inner = ",".join(_strip_names(p) for p in _split_top_level(param[1:close]))
    suffix = _ARRAY_SUFFIX.match(param[close + 1:].lstrip()).group(0)
    return f"({inner}){suffix}"


def _parse_type(type_str: str) -> ABIType:
    try:
        abi_type = parse(normalize(type_str))
        abi_type.validate()
    except (ParseError, ABITypeError) as exc:
        raise ValidationError(f"Invalid ABI type {type_str!r}: {exc}") from exc
    return abi_type


def _parse(signature: str) -> tuple[str, list[ABIType]]:
    match = _SIGNATURE.match(signature)
    if not match:
        raise ValidationError(f"Malformed function signature: {signature!r}")
    name, params = match.groups()
    return name, [_parse_type(_strip_names(p)) for p in _split_top_level(params)]


def parse_signature(signature: str) -> tuple[str, list[str]]:
    name, types = _parse(signature)
    return name, [t.to_type_str() for t in types]


def canonical_signature(signature: str) -> str:
    name, types = parse_signature(signature)
    return f"{name}({','.join(types)})"


def _coerce(abi_type: ABIType, value: Any) -> Any:
    """Turn JSON-friendly values (decimal strings, hex strings) into what eth-abi expects."""
    type_str = abi_type.to_type_str()
    if abi_type.is_array:
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"Expected a list for {type_str}")
        return [_coerce(abi_type.item_type, v) for v in value]
    if isinstance(abi_type, TupleType):
        components = abi_type.components
        if not isinstance(value, (list, tuple)) or len(value) != len(components):
            raise ValidationError(f"Expected {len(components)} values for {type_str}")
        return tuple(_coerce(t, v) for t, v in zip(components, value))
    if abi_type.base in ("int", "uint") and isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ValidationError(f"Invalid {type_str} value: {value!r}") from exc
    if abi_type.base == "bytes" and isinstance(value, str):
        try:
            return bytes.fromhex(value.removeprefix("0x"))
        except ValueError as exc:
            raise ValidationError(f"Invalid {type_str} hex value: {value!r}") from exc
    return value


def encode(signature: str, args: list[Any] | None = None) -> bytes:
    """4-byte selector followed by the ABI-encoded arguments."""
    name, types = _parse(signature)
    args = list(args or [])
    if len(args) != len(types):
        raise ValidationError(f"{name} takes {len(types)} arguments, got {len(args)}")
    values = [_coerce(t, v) for t, v in zip(types, args)]
    type_strs = [t.to_type_str() for t in types]
    selector = function_signature_to_4byte_selector(f"{name}({','.join(type_strs)})")
    try:
        return selector + abi_encode(type_strs, values)
    except (EncodingError, TypeError, ValueError) as exc:
        raise ValidationError(f"Cannot encode arguments for {name}: {exc}") from exc
