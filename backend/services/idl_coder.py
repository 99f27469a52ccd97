"""
IDL Instruction Coder - schema-derived Borsh layouts for instruction payloads.

Payload layout: discriminator prefix ++ borsh(args).
The discriminator is the instruction's explicit `discriminator` bytes when the
schema carries them, else sha256("global:<snake_case name>")[:8].

Usage:
    coder = IdlInstructionCoder(idl)
    decoded = coder.decode(data)   # raises InstructionDecodeError
    decoded.name, decoded.args
"""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import base58
from construct import (
    Array,
    BytesInteger,
    Bytes,
    Check,
    ConstructError,
    Container,
    ExprAdapter,
    Flag,
    Float32l,
    Float64l,
    FocusedSeq,
    GreedyBytes,
    If,
    Int8sl,
    Int8ul,
    Int16sl,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64sl,
    Int64ul,
    LazyBound,
    ListContainer,
    Pass,
    PascalString,
    Prefixed,
    PrefixedArray,
    Sequence,
    Struct,
    Switch,
    this,
)

from infrastructure.errors import InstructionDecodeError, SchemaError

DISCRIMINATOR_SIZE = 8

PublicKeyLayout = ExprAdapter(
    Bytes(32),
    decoder=lambda obj, ctx: base58.b58encode(obj).decode(),
    encoder=lambda obj, ctx: base58.b58decode(obj),
)

PRIMITIVES = {
    "bool": Flag,
    "u8": Int8ul,
    "i8": Int8sl,
    "u16": Int16ul,
    "i16": Int16sl,
    "u32": Int32ul,
    "i32": Int32sl,
    "u64": Int64ul,
    "i64": Int64sl,
    "u128": BytesInteger(16, signed=False, swapped=True),
    "i128": BytesInteger(16, signed=True, swapped=True),
    "u256": BytesInteger(32, signed=False, swapped=True),
    "i256": BytesInteger(32, signed=True, swapped=True),
    "f32": Float32l,
    "f64": Float64l,
    "string": PascalString(Int32ul, "utf8"),
    "bytes": Prefixed(Int32ul, GreedyBytes),
    "publicKey": PublicKeyLayout,
    "pubkey": PublicKeyLayout,
}

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z])([A-Z][a-z])")


def snake_case(name: str) -> str:
    """initializeMarket → initialize_market, swapV2 → swap_v2"""
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    name = _CAMEL_BOUNDARY.sub(r"\1_\2", name)
    return name.replace("-", "_").lower()


def sighash(name: str, namespace: str = "global") -> bytes:
    preimage = f"{namespace}:{snake_case(name)}".encode()
    return hashlib.sha256(preimage).digest()[:DISCRIMINATOR_SIZE]


def instruction_discriminator(ix: Dict[str, Any]) -> bytes:
    explicit = ix.get("discriminator")
    if explicit:
        return bytes(explicit)
    return sighash(ix["name"])


def discriminator_hex(data: bytes) -> str:
    """First 8 payload bytes as hex, zero-padded on the right for short payloads"""
    return bytes(data[:DISCRIMINATOR_SIZE]).ljust(DISCRIMINATOR_SIZE, b"\x00").hex()


def to_plain(obj: Any) -> Any:
    """construct containers → plain dicts/lists"""
    if isinstance(obj, Container):
        return {k: to_plain(v) for k, v in obj.items() if not k.startswith("_")}
    if isinstance(obj, (ListContainer, list)):
        return [to_plain(v) for v in obj]
    return obj


@dataclass
class DecodedInstruction:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


class IdlInstructionCoder:
    """Decode instruction payloads against a schema document"""

    def __init__(self, idl: Dict[str, Any]):
        if not isinstance(idl, dict):
            raise SchemaError("Schema document must be an object")

        self.idl = idl
        self._type_defs: Dict[str, Dict[str, Any]] = {}
        for type_def in (idl.get("accounts") or []) + (idl.get("types") or []):
            if isinstance(type_def, dict) and type_def.get("name") and type_def.get("type"):
                self._type_defs[type_def["name"]] = type_def["type"]
        self._defined_cache: Dict[str, Any] = {}
        # Schema errors are raised here, never from decode()
        for name in self._type_defs:
            self._defined(name)

        self._layouts: Dict[bytes, Any] = {}
        self._names: Dict[bytes, str] = {}
        for ix in idl.get("instructions") or []:
            if not ix.get("name"):
                raise SchemaError("Instruction without a name")
            disc = instruction_discriminator(ix)
            if disc in self._names:
                raise SchemaError(
                    f"Duplicate discriminator for {ix['name']} and {self._names[disc]}",
                    {"discriminator": disc.hex()},
                )
            fields = [self._field(arg) for arg in ix.get("args") or []]
            self._layouts[disc] = Struct(*fields)
            self._names[disc] = ix["name"]

        self._prefix_sizes = sorted({len(d) for d in self._names}, reverse=True)

    @property
    def instruction_names(self) -> List[str]:
        return list(self._names.values())

    # ============================================
    # DECODING
    # ============================================

    def decode(self, data: bytes) -> DecodedInstruction:
        data = bytes(data)
        for size in self._prefix_sizes:
            prefix = data[:size]
            if len(prefix) == size and prefix in self._layouts:
                try:
                    args = self._layouts[prefix].parse(data[size:])
                except (ConstructError, ValueError) as e:
                    raise InstructionDecodeError(
                        f"Args for {self._names[prefix]} do not match payload: {e}",
                        discriminator_hex(data),
                    ) from e
                return DecodedInstruction(self._names[prefix], to_plain(args))

        raise InstructionDecodeError("Unknown discriminator", discriminator_hex(data))

    def try_decode(self, data: bytes) -> Optional[DecodedInstruction]:
        try:
            return self.decode(data)
        except InstructionDecodeError:
            return None

    # ============================================
    # LAYOUT BUILDING
    # ============================================

    def _field(self, arg: Dict[str, Any]):
        return arg["name"] / self._layout(arg["type"])

    def _layout(self, ty: Any):
        if isinstance(ty, str):
            if ty in PRIMITIVES:
                return PRIMITIVES[ty]
            raise SchemaError(f"Unsupported type: {ty}")

        if not isinstance(ty, dict):
            raise SchemaError(f"Malformed type: {ty!r}")

        if "vec" in ty:
            return PrefixedArray(Int32ul, self._layout(ty["vec"]))
        if "option" in ty:
            return self._option(self._layout(ty["option"]), Int8ul)
        if "coption" in ty:
            return self._option(self._layout(ty["coption"]), Int32ul)
        if "array" in ty:
            inner, length = ty["array"]
            if not isinstance(length, int):
                raise SchemaError(f"Unsupported array length: {length!r}")
            if inner == "u8":
                return Bytes(length)
            return Array(length, self._layout(inner))
        if "defined" in ty:
            defined = ty["defined"]
            name = defined.get("name") if isinstance(defined, dict) else defined
            if name not in self._type_defs:
                raise SchemaError(f"Type not found: {name}")
            return LazyBound(lambda: self._defined(name))

        raise SchemaError(f"Unsupported type: {ty!r}")

    @staticmethod
    def _option(sub, tag):
        return FocusedSeq(
            "value",
            "tag" / tag,
            Check(lambda ctx: ctx.tag in (0, 1)),
            "value" / If(this.tag == 1, sub),
        )

    def _defined(self, name: str):
        if name in self._defined_cache:
            return self._defined_cache[name]

        type_def = self._type_defs[name]
        kind = type_def.get("kind")
        if kind == "struct":
            layout = self._fields(type_def.get("fields") or [])
        elif kind == "enum":
            layout = self._enum(type_def.get("variants") or [])
        elif kind == "alias":
            layout = self._layout(type_def["value"])
        else:
            raise SchemaError(f"Unsupported type kind for {name}: {kind}")

        self._defined_cache[name] = layout
        return layout

    def _fields(self, fields: List[Any]):
        if fields and all(isinstance(f, dict) and "name" in f for f in fields):
            return Struct(*(self._field(f) for f in fields))
        # Tuple fields
        return Sequence(*(self._layout(f) for f in fields))

    def _enum(self, variants: List[Dict[str, Any]]):
        cases = {}
        for i, variant in enumerate(variants):
            fields = variant.get("fields") or []
            cases[i] = self._fields(fields) if fields else Pass
        count = len(variants)
        return Struct(
            "variant" / Int8ul,
            Check(lambda ctx: ctx.variant < count),
            "value" / Switch(this.variant, cases),
        )
