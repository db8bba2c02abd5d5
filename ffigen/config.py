"""Generator configuration.

A :class:`GeneratorConfig` is built once (by :func:`ffigen.generate` or the
command line) and passed explicitly to the backend, the declaration reader
and the writers. It is immutable.

Example
-------
::

    import re
    from ffigen.config import GeneratorConfig

    config = GeneratorConfig(
        module_name="Clang",
        ffi_lib="clang",
        headers=("clang-c/Index.h", re.compile(r"clang-c/.*\\.h$")),
        prefixes=("clang_", "CX"),
    )
"""

from __future__ import (
    annotations,
)

import fnmatch
import re
from collections.abc import (
    Iterable,
)
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Optional,
    Union,
)

from ffigen.keywords import (
    keywords,
)

HeaderPattern = Union[str, "re.Pattern[str]"]


@dataclass(frozen=True)
class GeneratorConfig:
    """Settings shared by every stage of a run.

    :param module_name: Name of the generated binding module. Opaque here.
    :param headers: Header patterns. Strings are ``#include``d by
        :func:`ffigen.generate` and match files whose path ends with them
        (or ``fnmatch`` them); compiled regular expressions only filter.
    :param ffi_lib: Native library name. Opaque here.
    :param prefixes: Identifier prefixes stripped from every name.
    :param blocking: Raw function names that may block.
    :param reserved_words: Renderings that need an ``_`` suffix.
    :param cflags: Extra arguments for the C front-end.
    :raises ValueError: If ``module_name`` or ``headers`` is missing.
    """

    module_name: str
    headers: tuple[HeaderPattern, ...]
    ffi_lib: Optional[str] = None
    prefixes: tuple[str, ...] = ()
    blocking: frozenset[str] = frozenset()
    reserved_words: frozenset[str] = field(default=keywords)
    cflags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.module_name:
            raise ValueError("No module name given.")
        if not self.headers:
            raise ValueError("No headers given.")
        # Accept any iterable from callers, store immutable containers.
        object.__setattr__(self, "headers", tuple(self.headers))
        object.__setattr__(self, "prefixes", tuple(self.prefixes))
        object.__setattr__(self, "blocking", frozenset(self.blocking))
        object.__setattr__(self, "reserved_words", frozenset(self.reserved_words))
        object.__setattr__(self, "cflags", tuple(self.cflags))

    @property
    def include_headers(self) -> list[str]:
        """Header patterns that name files to ``#include``."""
        return [h for h in self.headers if isinstance(h, str)]

    def matches_header(self, filename: str) -> bool:
        """Check whether ``filename`` belongs to one of the configured headers."""
        return any(_match(pattern, filename) for pattern in self.headers)

    def is_blocking(self, raw_name: str) -> bool:
        return raw_name in self.blocking


def _match(pattern: HeaderPattern, filename: str) -> bool:
    if isinstance(pattern, str):
        return filename.endswith(pattern) or fnmatch.fnmatch(filename, pattern)
    return pattern.search(filename) is not None


def parse_header_patterns(values: Iterable[str]) -> tuple[HeaderPattern, ...]:
    """Convert command-line header arguments to patterns.

    Arguments wrapped in slashes (``/clang-c/.*\\.h/``) become regular
    expressions; anything else stays a plain header path.
    """
    patterns: list[HeaderPattern] = []
    for value in values:
        if len(value) > 2 and value.startswith("/") and value.endswith("/"):
            patterns.append(re.compile(value[1:-1]))
        else:
            patterns.append(value)
    return tuple(patterns)
