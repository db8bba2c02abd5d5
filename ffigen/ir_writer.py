"""IR to JSON writer.

Renders a completed :class:`~ffigen.ir.DeclarationIndex` as a JSON
document, the way a binding emitter would see it: names formatted under
the configured reserved words, enum constants shortened, descriptions
cleaned and methods listed on their structs.

Naming
------
* Constants: ``UPPER_CASE``
* Enums, structs, unions and callbacks: ``CamelCase``
* Functions, methods, fields, parameters and enum constants: ``lower_case``

Example
-------
::

    from ffigen import generate
    from ffigen.ir_writer import write_json

    result = generate(config)
    with open("widget.json", "w") as f:
        f.write(write_json(result, config))
"""

from __future__ import (
    annotations,
)

import json
from typing import (
    Any,
    Union,
)

from ffigen.comments import (
    clean_description,
)
from ffigen.config import (
    GeneratorConfig,
)
from ffigen.ir import (
    ByValueType,
    ConstantArrayType,
    DeclarationIndex,
    Enum,
    FunctionOrCallback,
    Name,
    ParseResult,
    PointerType,
    PrimitiveType,
    StringType,
    StructOrUnion,
    Type,
    UnknownType,
)


class JsonWriter:
    """Writes a declaration index to JSON.

    :param index: The completed index.
    :param config: Supplies the module and library names and the reserved words.
    """

    INDENT = 2

    def __init__(self, index: DeclarationIndex, config: GeneratorConfig) -> None:
        self.index = index
        self.config = config

    def write(self) -> str:
        return json.dumps(self.to_dict(), indent=self.INDENT) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.config.module_name,
            "ffi_lib": self.config.ffi_lib,
            "constants": [
                {"name": self._format(c.name, "upcase", joiner="_"), "raw": c.name.raw, "value": c.value}
                for c in self.index.constants
            ],
            "enums": [self._write_enum(e) for e in self.index.enums],
            "structs": [self._write_struct(s) for s in self.index.structs],
            "callbacks": [self._write_function(c) for c in self.index.callbacks],
            "functions": [self._write_function(f) for f in self.index.functions],
        }

    def _format(self, name: Name, *casing: str, joiner: str = "") -> str:
        return name.format(*casing, joiner=joiner, reserved_words=self.config.reserved_words)

    def _write_enum(self, enum: Enum) -> dict[str, Any]:
        return {
            "name": self._format(enum.name, "camelcase"),
            "raw": enum.name.raw,
            "description": clean_description(enum.description, not_documented=False),
            "constants": [
                {
                    "name": self._format(short_name, "downcase", joiner="_"),
                    "raw": constant.name.raw,
                    "value": constant.value,
                    "description": clean_description(constant.description, not_documented=False),
                }
                for short_name, constant in zip(enum.shortened_constant_names(), enum.constants)
            ],
        }

    def _write_struct(self, struct: StructOrUnion) -> dict[str, Any]:
        return {
            "name": self._format(struct.name, "camelcase"),
            "raw": struct.name.raw,
            "kind": "union" if struct.is_union else "struct",
            "description": clean_description(struct.description, not_documented=False),
            "fields": [
                {
                    "name": self._format(f.name, "downcase", joiner="_"),
                    "type": self.write_type(f.type),
                    "description": clean_description(f.description, not_documented=False),
                }
                for f in struct.fields
            ],
            "methods": [
                {"name": self._format(m.name, "downcase", joiner="_"), "function": m.function.name.raw}
                for m in struct.methods
            ],
        }

    def _write_function(self, function: FunctionOrCallback) -> dict[str, Any]:
        if function.is_callback:
            name = self._format(function.name, "camelcase")
        else:
            name = self._format(function.name, "downcase", joiner="_")
        return {
            "name": name,
            "raw": function.name.raw,
            "blocking": function.is_blocking,
            "description": clean_description(function.function_description, not_documented=False),
            "parameters": [
                {
                    "name": self._format(p.name, "downcase", joiner="_"),
                    "type": self.write_type(p.type),
                    "array": p.is_array,
                    "description": clean_description(p.description, not_documented=False),
                }
                for p in function.parameters
            ],
            "returns": {
                "type": self.write_type(function.return_type),
                "description": clean_description(function.return_value_description, not_documented=False),
            },
        }

    # pylint: disable=too-many-return-statements
    def write_type(self, type_: Type) -> Union[dict[str, Any], str]:
        """Describe a resolved type. Named entities are referenced, not inlined."""
        if isinstance(type_, PrimitiveType):
            return type_.kind
        if isinstance(type_, StringType):
            return "string"
        if isinstance(type_, ByValueType):
            return {"by_value": self._format(type_.inner.name, "camelcase")}
        if isinstance(type_, PointerType):
            return {"pointer": self._format(type_.pointee_name, "camelcase"), "depth": type_.depth}
        if isinstance(type_, ConstantArrayType):
            return {"array": self.write_type(type_.element_type), "size": type_.size}
        if isinstance(type_, StructOrUnion):
            return {"union" if type_.is_union else "struct": self._format(type_.name, "camelcase")}
        if isinstance(type_, Enum):
            return {"enum": self._format(type_.name, "camelcase")}
        if isinstance(type_, FunctionOrCallback):
            return {"callback": self._format(type_.name, "camelcase")}
        if isinstance(type_, UnknownType):
            return "unknown"
        raise TypeError(f"Unexpected type variant: {type_!r}")


def write_json(result: Union[ParseResult, DeclarationIndex], config: GeneratorConfig) -> str:
    """Convert a parse result (or bare index) to a JSON document.

    :param result: Output of :func:`ffigen.generate` or a filled index.
    :param config: Generator configuration used for naming.
    :returns: The JSON text, newline-terminated.
    """
    index = result.index if isinstance(result, ParseResult) else result
    return JsonWriter(index, config).write()
