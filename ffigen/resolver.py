"""Map libclang types to the ffigen type vocabulary.

Dispatch happens on the canonical (typedef-free) type; the original type
is kept for naming pointer targets, so generated names follow the
typedefs a header's users see.

Example
-------
::

    resolver = TypeResolver(index, prefixes=("cef_",))
    field_type = resolver.resolve(field_cursor.type)
"""

from __future__ import (
    annotations,
)

from collections.abc import (
    Callable,
    Hashable,
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

from ffigen.ir import (
    ByValueType,
    ConstantArrayType,
    DeclarationIndex,
    Enum,
    FunctionOrCallback,
    Name,
    PointerType,
    PrimitiveType,
    StringType,
    StructOrUnion,
    Type,
    UnknownType,
)

PRIMITIVE_KINDS = frozenset(
    [
        TypeKind.VOID,
        TypeKind.BOOL,
        TypeKind.CHAR_U,
        TypeKind.UCHAR,
        TypeKind.USHORT,
        TypeKind.UINT,
        TypeKind.ULONG,
        TypeKind.ULONGLONG,
        TypeKind.CHAR_S,
        TypeKind.SCHAR,
        TypeKind.SHORT,
        TypeKind.INT,
        TypeKind.LONG,
        TypeKind.LONGLONG,
        TypeKind.FLOAT,
        TypeKind.DOUBLE,
    ]
)

STRING_KINDS = frozenset([TypeKind.CHAR_S, TypeKind.CHAR_U])

FUNCTION_KINDS = frozenset([TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO])

# Arrays without a constant length; as parameters they decay to pointers
UNSIZED_ARRAY_KINDS = frozenset([TypeKind.INCOMPLETEARRAY, TypeKind.VARIABLEARRAY])

TAG_DECL_KINDS = frozenset([CursorKind.STRUCT_DECL, CursorKind.UNION_DECL, CursorKind.ENUM_DECL])


class UnsupportedTypeError(NotImplementedError):
    """A C type category has no mapping in the ffigen type vocabulary."""


def is_anonymous(cursor: clang.cindex.Cursor) -> bool:
    """Check whether a declaration cursor has no user-visible name.

    Recent libclang versions spell unnamed records as
    ``struct (unnamed at file.h:3:9)`` instead of an empty string.
    """
    spelling = cursor.spelling
    if not spelling:
        return True
    if cursor.kind in TAG_DECL_KINDS:
        return "(anonymous" in spelling or "(unnamed" in spelling or cursor.is_anonymous()
    return False


def read_name(cursor: clang.cindex.Cursor, prefixes: Iterable[str] = ()) -> Name:
    """Tokenize a cursor's spelling; anonymous declarations get an empty name."""
    if cursor.kind == CursorKind.NO_DECL_FOUND or is_anonymous(cursor):
        return Name((), "")
    return Name.tokenize(cursor.spelling, prefixes)


def declaration_key(cursor: Optional[clang.cindex.Cursor]) -> Optional[Hashable]:
    """Index key of a declared type.

    Every redeclaration of a type shares one canonical cursor, so forward
    declarations and definitions map to the same key. Cursors compare with
    ``clang_equalCursors``, so distinct declarations never share a key.
    """
    if cursor is None or cursor.kind == CursorKind.NO_DECL_FOUND:
        return None
    return ("type", cursor.canonical)


def type_key(clang_type: clang.cindex.Type) -> Optional[Hashable]:
    """Index key of the declaration behind ``clang_type``, if it has one."""
    return declaration_key(clang_type.get_declaration())


class TypeResolver:
    """Resolves libclang types against a :class:`~ffigen.ir.DeclarationIndex`.

    :param index: Index consulted (and, for forward references, extended).
    :param prefixes: Identifier prefixes stripped from generated names.
    :param is_visible: Predicate telling whether a declaration cursor lives
        in a header being read. Pointers to visible records that have not
        been read yet get a placeholder entry; others use the generic
        pointer heuristic.
    """

    def __init__(
        self,
        index: DeclarationIndex,
        prefixes: Iterable[str] = (),
        is_visible: Optional[Callable[[clang.cindex.Cursor], bool]] = None,
    ) -> None:
        self.index = index
        self.prefixes = tuple(prefixes)
        self._is_visible = is_visible or (lambda cursor: False)

    # pylint: disable=too-many-return-statements
    def resolve(self, full_type: clang.cindex.Type) -> Type:
        """Map ``full_type`` to exactly one type variant.

        :raises UnsupportedTypeError: For type categories without a mapping.
        """
        canonical = full_type.get_canonical()
        kind = canonical.kind

        if kind in PRIMITIVE_KINDS:
            return PrimitiveType(kind.name.lower())

        if kind == TypeKind.POINTER:
            return self._resolve_pointer(full_type, canonical.get_pointee())

        if kind in UNSIZED_ARRAY_KINDS:
            element = self._array_type(full_type, canonical).element_type
            return self._resolve_pointer(element, element.get_canonical(), depth=1)

        if kind == TypeKind.RECORD:
            struct = self.index.get(type_key(canonical))
            if isinstance(struct, StructOrUnion):
                return ByValueType(struct)
            # By-value use of a record that was never read
            return UnknownType()

        if kind == TypeKind.ENUM:
            enum = self.index.get(type_key(canonical))
            if isinstance(enum, Enum):
                return enum
            return UnknownType()

        if kind == TypeKind.CONSTANTARRAY:
            array_type = self._array_type(full_type, canonical)
            return ConstantArrayType(self.resolve(array_type.element_type), array_type.element_count)

        if kind == TypeKind.UNEXPOSED:
            return UnknownType()

        raise UnsupportedTypeError(f"No translation for values of type {kind.spelling} ({full_type.spelling})")

    @staticmethod
    def _array_type(full_type: clang.cindex.Type, canonical: clang.cindex.Type) -> clang.cindex.Type:
        # Keep the spelled element type (typedef names) when the array is not behind a typedef
        return full_type if full_type.kind == canonical.kind else canonical

    def resolve_member(self, full_type: clang.cindex.Type) -> Type:
        """Like :meth:`resolve`, for a struct or union member.

        A flexible array member (``char data[];``) occupies no storage, so it
        becomes a zero-length :class:`~ffigen.ir.ConstantArrayType` instead of
        decaying to a pointer.
        """
        canonical = full_type.get_canonical()
        if canonical.kind == TypeKind.INCOMPLETEARRAY:
            element = self._array_type(full_type, canonical).element_type
            return ConstantArrayType(self.resolve(element), 0)
        return self.resolve(full_type)

    def _resolve_pointer(self, named_type: clang.cindex.Type, pointee: clang.cindex.Type, depth: int = 0) -> Type:
        """Resolve a pointer to the canonical ``pointee``.

        ``named_type`` is the spelled type the pointer heuristic starts from:
        the pointer itself, or the element of a decayed array (``depth=1``).
        """
        if pointee.kind in STRING_KINDS:
            return StringType()

        if pointee.kind == TypeKind.RECORD:
            struct = self.record_declaration(pointee.get_declaration())
            if struct is not None:
                return struct

        elif pointee.kind in FUNCTION_KINDS:
            callback = self.index.get(type_key(named_type))
            if isinstance(callback, FunctionOrCallback):
                return callback

        return self._pointer_heuristic(named_type, depth)

    def record_declaration(self, decl: clang.cindex.Cursor) -> Optional[StructOrUnion]:
        """Look up the aggregate declared by ``decl``.

        Visible records that were not read yet are registered as empty
        placeholders; the definition fills the same object later.
        """
        key = declaration_key(decl)
        if key is None:
            return None
        struct = self.index.get(key)
        if struct is None and self._is_visible(decl):
            struct = self.index.placeholder(key, read_name(decl, self.prefixes), decl.kind == CursorKind.UNION_DECL)
        return struct if isinstance(struct, StructOrUnion) else None

    def _pointer_heuristic(self, full_type: clang.cindex.Type, depth: int = 0) -> PointerType:
        """Walk pointer levels until a named type (or an opaque one) is reached."""
        current = full_type
        while True:
            pointee_name = read_name(current.get_declaration(), self.prefixes)
            if not pointee_name.is_empty():
                break
            if current.kind == TypeKind.POINTER:
                depth += 1
                current = current.get_pointee()
                continue
            if current.kind != TypeKind.UNEXPOSED:
                pointee_name = Name.tokenize(current.kind.spelling)
            break
        return PointerType(pointee_name, depth)

    def pointee_declaration(self, clang_type: clang.cindex.Type) -> Optional[StructOrUnion]:
        """Aggregate behind a (possibly multi-level) pointer type, if known."""
        canonical = clang_type.get_canonical()
        if canonical.kind != TypeKind.POINTER:
            return None
        while canonical.kind == TypeKind.POINTER:
            canonical = canonical.get_pointee()
        if canonical.kind != TypeKind.RECORD:
            return None
        struct = self.index.get(type_key(canonical))
        return struct if isinstance(struct, StructOrUnion) else None
