"""Declaration reader.

Walks the top-level cursors of a translation unit and fills a
:class:`~ffigen.ir.DeclarationIndex` with enums, structs and unions,
functions, callbacks and macro constants. Only declarations located in
one of the visible files are read.

Comments
--------
Each declaration is documented by the comment nearest to it in the gap
since the previous top-level declaration of the same file. Struct, union
and enum declarations do not close the gap: in ``typedef struct {...} T;``
the typedef reads the comment above the whole construct.

Example
-------
::

    reader = DeclarationReader(tu, config, visible_files={"widget.h"})
    index = reader.read()
    for struct in index.structs:
        print(struct.name, [m.name for m in struct.methods])
"""

from __future__ import (
    annotations,
)

import sys
from collections.abc import (
    Iterable,
)
from typing import (
    Optional,
)

import clang.cindex
from clang.cindex import (
    CursorKind,
    TypeKind,
)

from ffigen.comments import (
    extract_comment,
    split_enum_comment,
    split_function_comment,
)
from ffigen.config import (
    GeneratorConfig,
)
from ffigen.evaluate import (
    evaluate_tokens,
)
from ffigen.ir import (
    Constant,
    DeclarationIndex,
    Enum,
    EnumConstant,
    Field,
    FunctionOrCallback,
    Method,
    Name,
    Parameter,
    StructOrUnion,
)
from ffigen.resolver import (
    FUNCTION_KINDS,
    TypeResolver,
    UnsupportedTypeError,
    read_name,
    type_key,
)

# Declarations that never move the comment window forward
_NESTABLE_KINDS = frozenset([CursorKind.ENUM_DECL, CursorKind.STRUCT_DECL, CursorKind.UNION_DECL])

_STRUCT_MEMBER_KINDS = _NESTABLE_KINDS | {CursorKind.FIELD_DECL}


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def is_function_like_macro(tokens: list[clang.cindex.Token]) -> bool:
    """Check whether a macro definition's tokens start a parameter list.

    Function-like: ``#define MAX(a, b) ...`` (``(`` touches the name).
    Object-like: ``#define X (1 + 2)``.
    """
    if len(tokens) < 2 or tokens[1].spelling != "(":
        return False
    return tokens[1].extent.start.offset == tokens[0].extent.end.offset


def method_name(struct_name: Name, function_name: Name) -> Optional[Name]:
    """Name of ``function_name`` as a method of ``struct_name``.

    Leading fragments of the function name are consumed while they prefix
    the struct's name (case-insensitive, fragments joined). The function is
    a method only when the whole struct name is consumed and something is
    left over.

    Example
    -------
    ::

        method_name(Name.tokenize("Widget"), Name.tokenize("WidgetCreate"))
        # Name(("create",))
        method_name(Name.tokenize("Widget"), Name.tokenize("DoSomething"))
        # None
    """
    type_prefix = "".join(struct_name.parts).lower()
    if not type_prefix:
        return None
    parts = list(function_name.parts)
    while parts and type_prefix and type_prefix.startswith(parts[0].lower()):
        type_prefix = type_prefix[len(parts[0]) :]
        parts.pop(0)
    if type_prefix or not parts:
        return None
    return Name(tuple(parts))


class DeclarationReader:
    """Reads top-level declarations of a translation unit.

    :param tu: Parsed translation unit (with a detailed preprocessing
        record, so macro definitions are visited).
    :param config: Generator configuration.
    :param visible_files: File names whose declarations are read.
    :param index: Index to fill. A new one is created by default.
    """

    def __init__(
        self,
        tu: clang.cindex.TranslationUnit,
        config: GeneratorConfig,
        visible_files: Iterable[str],
        index: Optional[DeclarationIndex] = None,
    ) -> None:
        self.tu = tu
        self.config = config
        self.visible_files = set(visible_files)
        self.index = index if index is not None else DeclarationIndex()
        self.resolver = TypeResolver(self.index, config.prefixes, self.is_visible)
        # Per file: end of the last declaration that closed a comment gap
        self._previous_end: dict[str, clang.cindex.SourceLocation] = {}

    def is_visible(self, cursor: clang.cindex.Cursor) -> bool:
        location_file = cursor.location.file
        return location_file is not None and location_file.name in self.visible_files

    def _name(self, cursor: clang.cindex.Cursor) -> Name:
        return read_name(cursor, self.config.prefixes)

    def read(self) -> DeclarationIndex:
        """Read every top-level declaration in source order.

        :returns: The filled index.
        :raises UnsupportedTypeError: If a declaration uses a type with no
            mapping. The message names the declaration.
        :raises DuplicateDefinitionError: If an aggregate is defined twice.
        """
        for cursor in self.tu.cursor.get_children():
            location_file = cursor.location.file
            if location_file is None:
                continue
            filename = location_file.name

            previous_end = self._previous_end.get(filename)
            if previous_end is None:
                previous_end = clang.cindex.SourceLocation.from_offset(self.tu, location_file, 0)
            if cursor.kind not in _NESTABLE_KINDS and cursor.kind != CursorKind.MACRO_INSTANTIATION:
                end = cursor.extent.end
                if end.offset > previous_end.offset:
                    self._previous_end[filename] = end

            if filename not in self.visible_files:
                continue

            comment, _ = extract_comment(self.tu, previous_end, cursor.extent.start)
            try:
                self.read_declaration(cursor, comment)
            except UnsupportedTypeError as e:
                location = cursor.location
                raise UnsupportedTypeError(f"{filename}:{location.line}: in declaration of {cursor.spelling!r}: {e}") from e

        return self.index

    def read_declaration(self, cursor: clang.cindex.Cursor, comment: list[str]) -> None:
        """Read a single declaration cursor; unknown kinds are ignored."""
        kind = cursor.kind
        if kind == CursorKind.ENUM_DECL:
            self._read_enum(cursor, comment)
        elif kind in (CursorKind.STRUCT_DECL, CursorKind.UNION_DECL):
            self._read_struct(cursor, comment)
        elif kind == CursorKind.FUNCTION_DECL:
            self._read_function(cursor, comment)
        elif kind == CursorKind.TYPEDEF_DECL:
            self._read_typedef(cursor, comment)
        elif kind == CursorKind.MACRO_DEFINITION:
            self._read_macro(cursor)

    # -------------------------------------------------------------------------
    # Enums
    # -------------------------------------------------------------------------

    def _read_enum(self, cursor: clang.cindex.Cursor, comment: list[str]) -> None:
        key = type_key(cursor.type)
        existing = self.index.get(key)
        if isinstance(existing, Enum) and existing.constants:
            return

        enum_description, constant_descriptions = split_enum_comment(comment)
        constants: list[EnumConstant] = []
        previous_location = cursor.location
        next_value = 0

        for child in cursor.get_children():
            if child.kind != CursorKind.ENUM_CONSTANT_DECL:
                continue
            constant_name = self._name(child)
            description, _ = extract_comment(self.tu, previous_location, child.location)
            description = description + constant_descriptions.get(child.spelling, [])
            previous_location = child.location

            value_cursor = next(iter(child.get_children()), None)
            if value_cursor is None:
                value = next_value
            else:
                result = evaluate_tokens(value_cursor.get_tokens())
                if not result.ok:
                    _warn(f'Could not process value of enum constant "{child.spelling}" ({result.error})')
                    continue
                value = result.value

            constants.append(EnumConstant(constant_name, value, description))
            next_value = value + 1

        if isinstance(existing, Enum):
            existing.adopt_name(self._name(cursor))
            existing.constants = constants
            existing.description = enum_description
        else:
            self.index.register(key, Enum(self._name(cursor), constants, enum_description))

    # -------------------------------------------------------------------------
    # Structs and unions
    # -------------------------------------------------------------------------

    def _read_struct(self, cursor: clang.cindex.Cursor, comment: list[str]) -> StructOrUnion:
        name = self._name(cursor)
        struct = self.index.placeholder(type_key(cursor.type), name, cursor.kind == CursorKind.UNION_DECL)
        struct.adopt_name(name)
        if not cursor.is_definition():
            # Forward declaration
            return struct

        struct.begin_definition()
        struct.description.extend(comment)

        children = [c for c in cursor.get_children() if c.kind in _STRUCT_MEMBER_KINDS]
        previous_field_end = cursor.location
        position = 0
        while position < len(children):
            child = children[position]
            position += 1
            nested = None
            if child.kind != CursorKind.FIELD_DECL:
                if position >= len(children) or children[position].kind != CursorKind.FIELD_DECL:
                    # Declaration without a member using it
                    self.read_declaration(child, [])
                    continue
                nested = child
                child = children[position]
                position += 1

            field_name = self._name(child)
            field_extent = child.extent
            field_comment, _ = extract_comment(self.tu, previous_field_end, field_extent.start)

            next_start = children[position].location if position < len(children) else cursor.extent.end
            trailing, token = extract_comment(self.tu, field_extent.end, next_start, search_backwards=False)
            if token is not None and token.location.line == field_extent.end.line:
                field_comment = trailing
                previous_field_end = token.extent.end
            else:
                previous_field_end = field_extent.end

            if nested is not None:
                self.read_declaration(nested, [])
                entity = self.index.get(type_key(nested.type))
                if isinstance(entity, (StructOrUnion, Enum)):
                    entity.adopt_name(struct.name + field_name)

            struct.fields.append(Field(field_name, self.resolver.resolve_member(child.type), field_comment))

        return struct

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    def _read_function(self, cursor: clang.cindex.Cursor, comment: list[str]) -> None:
        key = ("cursor", cursor.canonical)
        if key in self.index:
            # Redeclaration
            return

        name = self._name(cursor)
        function_description, parameter_descriptions, return_value_description = split_function_comment(comment)
        return_type = self.resolver.resolve(cursor.result_type)

        parameters: list[Parameter] = []
        first_parameter_type = None
        for child in cursor.get_children():
            if child.kind != CursorKind.PARM_DECL:
                continue
            if first_parameter_type is None:
                first_parameter_type = child.type
            parameter_type = self.resolver.resolve(child.type)
            parameter_name = self._name(child)
            if parameter_name.is_empty():
                parameter_name = parameter_type.name
            is_array = any(token.spelling == "[" for token in child.get_tokens())
            parameters.append(Parameter(parameter_name, parameter_type, is_array))

        self._describe_parameters(parameters, parameter_descriptions)

        function = FunctionOrCallback(
            name=name,
            parameters=parameters,
            return_type=return_type,
            is_blocking=self.config.is_blocking(cursor.spelling),
            function_description=function_description,
            return_value_description=return_value_description,
        )
        self.index.register(key, function)

        if first_parameter_type is not None:
            struct = self.resolver.pointee_declaration(first_parameter_type)
            if struct is not None:
                grouped_name = method_name(struct.name, name)
                if grouped_name is not None:
                    struct.methods.append(Method(grouped_name, function))

    @staticmethod
    def _describe_parameters(parameters: list[Parameter], descriptions: dict[str, list[str]]) -> None:
        """Attach ``\\param`` text by name, else by position when the counts agree."""
        documented = list(descriptions.values())
        for position, parameter in enumerate(parameters):
            description = descriptions.get(parameter.name.raw or "")
            if description is None and len(documented) == len(parameters):
                description = documented[position]
            parameter.description = description or []

    # -------------------------------------------------------------------------
    # Typedefs and callbacks
    # -------------------------------------------------------------------------

    def _read_typedef(self, cursor: clang.cindex.Cursor, comment: list[str]) -> None:
        underlying = cursor.underlying_typedef_type
        canonical = underlying.get_canonical()
        if canonical.kind == TypeKind.POINTER and canonical.get_pointee().kind in FUNCTION_KINDS:
            self._read_callback(cursor, underlying, canonical, comment)
            return

        children = list(cursor.get_children())
        if len(children) == 1:
            entity = self.index.get(type_key(children[0].type))
            if isinstance(entity, (StructOrUnion, Enum)):
                entity.adopt_name(self._name(cursor))

    def _read_callback(
        self,
        cursor: clang.cindex.Cursor,
        underlying: clang.cindex.Type,
        canonical: clang.cindex.Type,
        comment: list[str],
    ) -> None:
        proto = underlying.get_pointee()
        if proto.kind != TypeKind.FUNCTIONPROTO:
            # Parenthesized or sugared prototypes are not exposed as prototypes
            proto = canonical.get_pointee()

        function_description, parameter_descriptions, return_value_description = split_function_comment(comment)
        return_type = self.resolver.resolve(proto.get_result())

        argument_types = list(proto.argument_types()) if proto.kind == TypeKind.FUNCTIONPROTO else []
        parameter_cursors: list[Optional[clang.cindex.Cursor]] = [
            c for c in cursor.get_children() if c.kind == CursorKind.PARM_DECL
        ]
        if len(parameter_cursors) != len(argument_types):
            parameter_cursors = [None] * len(argument_types)

        parameters: list[Parameter] = []
        for argument_type, parameter_cursor in zip(argument_types, parameter_cursors):
            if parameter_cursor is None:
                parameter_type = self.resolver.resolve(argument_type)
                parameter_name = Name()
            else:
                parameter_type = self.resolver.resolve(parameter_cursor.type)
                parameter_name = self._name(parameter_cursor)
            if parameter_name.is_empty():
                parameter_name = parameter_type.name
            parameters.append(Parameter(parameter_name, parameter_type))

        self._describe_parameters(parameters, parameter_descriptions)

        callback = FunctionOrCallback(
            name=self._name(cursor),
            parameters=parameters,
            return_type=return_type,
            is_callback=True,
            function_description=function_description,
            return_value_description=return_value_description,
        )
        self.index.register(type_key(cursor.type), callback)

    # -------------------------------------------------------------------------
    # Macros
    # -------------------------------------------------------------------------

    def _read_macro(self, cursor: clang.cindex.Cursor) -> None:
        tokens = list(cursor.get_tokens())
        if len(tokens) <= 1 or is_function_like_macro(tokens):
            return

        key = ("macro", cursor.spelling)
        if key in self.index:
            # First definition wins
            return

        result = evaluate_tokens(tokens[1:])
        if not result.ok:
            _warn(f'Could not process value of macro "{cursor.spelling}" ({result.error})')
            return
        self.index.register(key, Constant(self._name(cursor), result.value))
