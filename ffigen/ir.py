"""Intermediate Representation (IR) for C declarations.

This module defines the IR produced by the declaration reader. Emitters
consume it to render foreign-function bindings for a target language.

Design Principles
-----------------
* **Front-end agnostic**: Nothing here imports ``clang.cindex``.
* **Closed type vocabulary**: Every C type resolves to exactly one of the
  variants collected in :data:`Type`.
* **Stable identity**: Structs, unions and enums are mutated in place when
  their definition is read, so references resolved earlier stay valid.

Names
-----
* :class:`Name` - Identifier split into lower-case word fragments

Type Variants
-------------
* :class:`PrimitiveType` - ``void``, ``bool``, integers, ``float``, ``double``
* :class:`StringType` - ``char*``
* :class:`ByValueType` - Struct/union passed or returned by copy
* :class:`PointerType` - Pointer to something without a known declaration
* :class:`ConstantArrayType` - ``T[N]``
* :class:`StructOrUnion`, :class:`Enum`, :class:`FunctionOrCallback` - Declared entities
* :class:`UnknownType` - Resolution fallback

Example
-------
::

    from ffigen.ir import Name

    name = Name.tokenize("cef_task_post_delayed", prefixes=["cef_"])
    name.format("camelcase")                      # "TaskPostDelayed"
    name.format("downcase", joiner="_")           # "task_post_delayed"
"""

from __future__ import (
    annotations,
)

import re
from collections.abc import (
    Hashable,
    Iterable,
    Iterator,
)
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Optional,
    Union,
)


class DuplicateDefinitionError(RuntimeError):
    """A struct or union definition was read twice."""


# =============================================================================
# Names
# =============================================================================

# Boundaries: underscores, before "Xy" and between "xY".
_WORD_BOUNDARY = re.compile(r"_|(?=[A-Z][a-z])|(?<=[a-z])(?=[A-Z])")

CASING_MODES = ("downcase", "upcase", "camelcase", "initial_downcase")


@dataclass(frozen=True)
class Name:
    """Identifier normalized into word fragments.

    The fragments are stored lower-case; :meth:`format` renders them under
    a casing convention. The original spelling is kept in ``raw`` so that
    emitters can still refer to the native symbol.

    :param parts: Lower-case word fragments, in order.
    :param raw: The identifier as spelled in the header, or None for
        synthesized names.

    Examples
    --------
    ::

        name = Name.tokenize("WidgetCreate")
        name.parts                                   # ("widget", "create")
        name.format("camelcase")                     # "WidgetCreate"
        name.format("camelcase", "initial_downcase") # "widgetCreate"
        name.format("upcase", joiner="_")            # "WIDGET_CREATE"
    """

    parts: tuple[str, ...] = ()
    raw: Optional[str] = None

    @classmethod
    def tokenize(cls, raw: str, prefixes: Iterable[str] = ()) -> Name:
        """Split a C identifier into a :class:`Name`.

        A leading prefix from ``prefixes`` is stripped first (the first one
        that matches wins), then the rest is split on underscores and
        camel-case boundaries. Empty fragments are dropped.
        """
        stripped = raw
        prefixes = [p for p in prefixes if p]
        if prefixes:
            stripped = re.sub(r"^(?:%s)" % "|".join(re.escape(p) for p in prefixes), "", raw)
        parts = tuple(part.lower() for part in _WORD_BOUNDARY.split(stripped) if part)
        return cls(parts, raw)

    def format(
        self,
        *casing: str,
        joiner: str = "",
        reserved_words: Iterable[str] = (),
    ) -> str:
        """Render the name under ``casing`` and join the fragments with ``joiner``.

        :param casing: Any of ``"downcase"``, ``"upcase"``, ``"camelcase"``
            (capitalize each fragment) and ``"initial_downcase"`` (lower-case
            the first letter of the result), applied in that order.
        :param joiner: ``""`` or ``"_"``.
        :param reserved_words: Renderings that collide with one of these get
            an ``_`` suffix.
        :returns: The rendering. A rendering that would start with a digit
            gets an ``_`` prefix.
        :raises ValueError: On an unknown casing mode.
        """
        unknown = set(casing) - set(CASING_MODES)
        if unknown:
            raise ValueError(f"Unknown casing mode(s): {', '.join(sorted(unknown))}")

        parts = list(self.parts)
        if "downcase" in casing:
            parts = [p.lower() for p in parts]
        if "upcase" in casing:
            parts = [p.upper() for p in parts]
        if "camelcase" in casing:
            parts = [p[0].upper() + p[1:] for p in parts]
        if "initial_downcase" in casing and parts:
            parts[0] = parts[0][0].lower() + parts[0][1:]

        rendered = joiner.join(parts)
        rendered = re.sub(r"^(\d)", r"_\1", rendered)
        if rendered in set(reserved_words):
            rendered = f"{rendered}_"
        return rendered

    def is_empty(self) -> bool:
        """True for anonymous declarations still waiting for a name."""
        return not self.parts

    def __add__(self, other: Name) -> Name:
        return Name(self.parts + other.parts)

    def __str__(self) -> str:
        if self.raw:
            return self.raw
        return "_".join(self.parts)


def _display(name: Name) -> str:
    return "(anonymous)" if name.is_empty() else str(name)


# =============================================================================
# Type Variants
# =============================================================================


@dataclass
class PrimitiveType:
    """Built-in scalar type.

    :param kind: Lower-cased front-end kind name (e.g. ``"int"``, ``"uint"``,
        ``"char_s"``, ``"double"``).
    """

    kind: str

    @property
    def name(self) -> Name:
        return Name((self.kind,))

    def __str__(self) -> str:
        return self.kind


@dataclass
class StringType:
    """Pointer to ``char``, exposed as a string."""

    @property
    def name(self) -> Name:
        return Name(("string",))

    def __str__(self) -> str:
        return "string"


@dataclass(eq=False)
class ByValueType:
    """Struct or union passed or returned by copy.

    :param inner: The by-value aggregate.
    """

    inner: StructOrUnion

    @property
    def name(self) -> Name:
        return self.inner.name

    def __str__(self) -> str:
        return f"{self.inner} (by value)"


@dataclass
class PointerType:
    """Pointer whose pointee has no resolved declaration.

    :param pointee_name: Name of the first named type found while walking
        the pointer chain, or the front-end's spelling of its kind.
    :param depth: Number of pointer levels walked before the name was found.

    Example
    -------
    ::

        # typedef struct opaque* Handle;  Handle* out;
        PointerType(Name.tokenize("Handle"), 1)
    """

    pointee_name: Name
    depth: int

    @property
    def name(self) -> Name:
        return self.pointee_name

    def __str__(self) -> str:
        return f"{self.pointee_name}{'*' * self.depth}"


@dataclass(eq=False)
class ConstantArrayType:
    """Fixed-size array.

    :param element_type: Resolved element type.
    :param size: Number of elements.
    """

    element_type: Type
    size: int

    @property
    def name(self) -> Name:
        return Name(("array",))

    def __str__(self) -> str:
        return f"{self.element_type}[{self.size}]"


@dataclass
class UnknownType:
    """Type the resolver could not map. Never a hard failure."""

    @property
    def name(self) -> Name:
        return Name(("unknown",))

    def __str__(self) -> str:
        return "unknown"


# =============================================================================
# Declarations
# =============================================================================


@dataclass(eq=False)
class Field:
    """Struct or union member, in declaration order."""

    name: Name
    type: Type
    description: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.type} {self.name}"


@dataclass(eq=False)
class Parameter:
    """Function or callback parameter.

    :param name: Parameter name. Unnamed parameters carry their type's name.
    :param type: Resolved parameter type.
    :param is_array: True when the parameter was declared with ``[]``.
    :param description: Text documented through ``\\param``.
    """

    name: Name
    type: Type
    is_array: bool = False
    description: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.type} {self.name}"


@dataclass
class EnumConstant:
    """Single enumeration constant with its evaluated value."""

    name: Name
    value: int
    description: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.name} = {self.value}"


@dataclass(eq=False)
class Enum:
    """Enumeration declaration.

    :param name: Enum tag name. Empty for anonymous enums until a typedef
        donates one.
    :param constants: Constants in declaration order.
    :param description: General enum description.
    """

    name: Name
    constants: list[EnumConstant] = field(default_factory=list)
    description: list[str] = field(default_factory=list)

    def adopt_name(self, name: Name) -> bool:
        """Take ``name`` if this enum is still anonymous."""
        if not self.name.is_empty():
            return False
        self.name = name
        return True

    def shortened_constant_names(self) -> list[Name]:
        """Constant names without the fragments shared with the enum name.

        Leading fragments common to every constant are dropped while they
        also occur in the enum's own name; trailing fragments likewise.
        Enums with fewer than two constants are left alone.

        Example
        -------
        ::

            # enum Color { COLOR_RED, COLOR_GREEN };
            [n.parts for n in enum.shortened_constant_names()]  # [("red",), ("green",)]
        """
        names = [list(c.name.parts) for c in self.constants]
        if len(names) < 2:
            return [c.name for c in self.constants]

        own_parts = {p.lower() for p in self.name.parts}
        while all(len(n) > 1 for n in names) and len({n[0] for n in names}) == 1 and names[0][0] in own_parts:
            for n in names:
                n.pop(0)
        while all(len(n) > 1 for n in names) and len({n[-1] for n in names}) == 1 and names[0][-1] in own_parts:
            for n in names:
                n.pop()
        return [Name(tuple(parts), c.name.raw) for parts, c in zip(names, self.constants)]

    def __str__(self) -> str:
        return f"enum {_display(self.name)}"


@dataclass(eq=False)
class Method:
    """Free function grouped onto a struct (OO grouping)."""

    name: Name
    function: FunctionOrCallback


@dataclass(eq=False)
class StructOrUnion:
    """Struct or union declaration.

    Instances are created either as forward-reference placeholders (no
    fields yet) or while reading a definition. A placeholder keeps its
    identity when the definition is read: :meth:`begin_definition` guards
    against filling the same entity twice.

    :param name: Tag name. Empty for anonymous aggregates until a typedef or
        an enclosing field donates one.
    :param is_union: True for unions.
    :param description: Documentation lines.
    :param fields: Members in declaration order.
    :param methods: Free functions attached by the OO grouping heuristic.
    """

    name: Name
    is_union: bool = False
    description: list[str] = field(default_factory=list)
    fields: list[Field] = field(default_factory=list)
    methods: list[Method] = field(default_factory=list)

    def adopt_name(self, name: Name) -> bool:
        """Take ``name`` if this aggregate is still anonymous."""
        if not self.name.is_empty():
            return False
        self.name = name
        return True

    def begin_definition(self) -> None:
        """Check that this aggregate has not been filled yet.

        :raises DuplicateDefinitionError: If fields were already read.
        """
        if self.fields:
            raise DuplicateDefinitionError(f"{self} is defined more than once")

    def __str__(self) -> str:
        kind = "union" if self.is_union else "struct"
        return f"{kind} {_display(self.name)}"


@dataclass(eq=False)
class FunctionOrCallback:
    """Function declaration or callback (function-pointer typedef).

    :param name: Function or typedef name.
    :param parameters: Parameters in declaration order.
    :param return_type: Resolved return type.
    :param is_callback: True for function-pointer typedefs.
    :param is_blocking: True when configured as a blocking call.
    :param function_description: General documentation lines.
    :param return_value_description: Text documented through ``\\returns``.
    """

    name: Name
    parameters: list[Parameter]
    return_type: Type
    is_callback: bool = False
    is_blocking: bool = False
    function_description: list[str] = field(default_factory=list)
    return_value_description: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"{self.return_type} {self.name}({params})"


@dataclass
class Constant:
    """Macro constant with its evaluated value."""

    name: Name
    value: Union[int, float]

    def __str__(self) -> str:
        return f"#define {self.name} {self.value}"


Type = Union[
    PrimitiveType,
    StringType,
    ByValueType,
    PointerType,
    ConstantArrayType,
    StructOrUnion,
    Enum,
    FunctionOrCallback,
    UnknownType,
]

Declaration = Union[Enum, StructOrUnion, FunctionOrCallback, Constant]


# =============================================================================
# Declaration Index
# =============================================================================


class DeclarationIndex:
    """Mapping from declaration identity to its IR entity.

    Keys are opaque hashables chosen by the reader (a canonical declaration
    for types, a cursor for functions, the raw spelling for macros).
    Entries are only added or upgraded in place, never removed.

    Example
    -------
    ::

        index = DeclarationIndex()
        early = index.placeholder(("type", 1), Name.tokenize("Widget"))
        assert index.placeholder(("type", 1), Name.tokenize("Widget")) is early
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, Declaration] = {}

    def get(self, key: Optional[Hashable]) -> Optional[Declaration]:
        if key is None:
            return None
        return self._entries.get(key)

    def register(self, key: Hashable, entity: Declaration) -> Declaration:
        """Store ``entity`` under ``key`` unless the key is taken.

        :returns: The entity now stored under ``key`` (first one wins).
        """
        return self._entries.setdefault(key, entity)

    def placeholder(self, key: Hashable, name: Name, is_union: bool = False) -> StructOrUnion:
        """Return the aggregate stored under ``key``, creating an empty one if needed."""
        existing = self._entries.get(key)
        if isinstance(existing, StructOrUnion):
            return existing
        if existing is not None:
            raise TypeError(f"{key!r} is already bound to {existing}")
        struct = StructOrUnion(name=name, is_union=is_union)
        self._entries[key] = struct
        return struct

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def enums(self) -> list[Enum]:
        return [d for d in self if isinstance(d, Enum)]

    @property
    def structs(self) -> list[StructOrUnion]:
        return [d for d in self if isinstance(d, StructOrUnion)]

    @property
    def functions(self) -> list[FunctionOrCallback]:
        return [d for d in self if isinstance(d, FunctionOrCallback) and not d.is_callback]

    @property
    def callbacks(self) -> list[FunctionOrCallback]:
        return [d for d in self if isinstance(d, FunctionOrCallback) and d.is_callback]

    @property
    def constants(self) -> list[Constant]:
        return [d for d in self if isinstance(d, Constant)]

    def find(self, raw_name: str) -> Optional[Declaration]:
        """Look up a declaration by its raw C spelling (first match)."""
        for decl in self:
            if decl.name.raw == raw_name:
                return decl
        return None

    def __str__(self) -> str:
        return f"DeclarationIndex({len(self)} declarations)"


@dataclass
class ParseResult:
    """Everything a run produced for the emitters.

    :param path: Name of the (in-memory) main file that was parsed.
    :param index: The populated declaration index.
    :param visible_files: Files whose declarations were read.
    :param diagnostics: Formatted front-end diagnostics, in order.
    """

    path: str
    index: DeclarationIndex
    visible_files: list[str] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
