"""libclang-based parser backend.

This backend uses libclang (LLVM's C parser) to parse headers and hands
the translation unit to :class:`~ffigen.reader.DeclarationReader`.

Requirements
------------
* A loadable libclang shared library. The ``libclang`` package bundles
  one; a system LLVM installation is found as a fallback.

Diagnostics
-----------
Front-end diagnostics never abort a run. They are printed to stderr as
``clang diagnostic: ...`` and returned in
:attr:`ffigen.ir.ParseResult.diagnostics`.

Example
-------
::

    from ffigen.backends.libclang_backend import LibclangBackend

    backend = LibclangBackend()
    result = backend.parse(code, "ffigen_input.h", config, extra_args=["-std=c99"])
"""

from __future__ import (
    annotations,
)

import glob
import os
import subprocess
import sys
from typing import (
    Optional,
)

import clang.cindex

from ffigen.config import (
    GeneratorConfig,
)
from ffigen.ir import (
    ParseResult,
)
from ffigen.reader import (
    DeclarationReader,
)

_SEVERITY_NAMES = {
    clang.cindex.Diagnostic.Ignored: "ignored",
    clang.cindex.Diagnostic.Note: "note",
    clang.cindex.Diagnostic.Warning: "warning",
    clang.cindex.Diagnostic.Error: "error",
    clang.cindex.Diagnostic.Fatal: "fatal error",
}


def _get_libclang_search_paths() -> list[str]:
    """Get platform-specific paths to search for libclang.

    Returns a list of candidate paths where libclang might be installed,
    ordered by preference (most common/preferred locations first).
    """
    paths: list[str] = []

    if sys.platform == "darwin":
        # Homebrew on Apple Silicon, then Intel
        paths.append("/opt/homebrew/opt/llvm/lib/libclang.dylib")
        paths.extend(sorted(glob.glob("/opt/homebrew/Cellar/llvm/*/lib/libclang.dylib"), reverse=True))
        paths.append("/usr/local/opt/llvm/lib/libclang.dylib")
        paths.extend(sorted(glob.glob("/usr/local/Cellar/llvm/*/lib/libclang.dylib"), reverse=True))
        # Xcode Command Line Tools
        paths.append("/Library/Developer/CommandLineTools/usr/lib/libclang.dylib")

    elif sys.platform == "linux":
        # Debian/Ubuntu versioned LLVM packages (sorted newest first)
        paths.extend(sorted(glob.glob("/usr/lib/llvm-*/lib/libclang.so*"), reverse=True))
        paths.append("/usr/lib64/libclang.so")
        paths.append("/usr/lib/libclang.so")
        paths.append("/usr/local/lib/libclang.so")

    elif sys.platform == "win32":
        paths.append(r"C:\Program Files\LLVM\bin\libclang.dll")

    return paths


def _find_libclang_path() -> Optional[str]:
    for path in _get_libclang_search_paths():
        if os.path.isfile(path):
            return path
    return None


_libclang_configured: bool = False


def _configure_libclang() -> bool:
    """Configure clang.cindex to find libclang library.

    Attempts default loading first (the bundled library, or
    ``LD_LIBRARY_PATH``/``DYLD_LIBRARY_PATH``), then searches common
    platform-specific locations.

    :returns: True if libclang is available and configured, False otherwise.
    """
    global _libclang_configured  # pylint: disable=global-statement

    if _libclang_configured:
        try:
            clang.cindex.Config().get_cindex_library()
            return True
        except clang.cindex.LibclangError:
            return False

    _libclang_configured = True

    try:
        clang.cindex.Config().get_cindex_library()
        return True
    except clang.cindex.LibclangError:
        pass

    libclang_path = _find_libclang_path()
    if libclang_path:
        clang.cindex.Config.set_library_file(libclang_path)
        try:
            clang.cindex.Config().get_cindex_library()
            return True
        except clang.cindex.LibclangError:
            return False

    return False


def is_system_libclang_available() -> bool:
    """Check if a libclang library can be loaded.

    :returns: True if libclang is available and can be used.
    """
    return _configure_libclang()


# Computed once per process
_system_include_cache: Optional[list[str]] = None


def get_system_include_dirs() -> list[str]:
    """Get system include directories by querying the system clang compiler.

    This runs ``clang -v -x c -E /dev/null`` and parses the include paths
    from its output. The result is cached for subsequent calls.

    :returns: List of ``-isystem<path>`` arguments. Empty if clang is not
        installed or detection fails.
    """
    global _system_include_cache  # pylint: disable=global-statement

    if _system_include_cache is not None:
        return _system_include_cache

    include_args: list[str] = []
    try:
        null_file = "NUL" if sys.platform == "win32" else "/dev/null"
        result = subprocess.run(
            ["clang", "-v", "-x", "c", "-E", null_file],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
        in_includes = False
        for line in result.stderr.splitlines():
            if "#include <...> search starts here:" in line:
                in_includes = True
                continue
            if in_includes:
                if line.startswith("End of search list"):
                    break
                path = line.strip()
                if path and not path.endswith("(framework directory)"):
                    include_args.append(f"-isystem{path}")
    except (subprocess.SubprocessError, FileNotFoundError):
        pass

    _system_include_cache = include_args
    return include_args


def format_diagnostic(diagnostic: clang.cindex.Diagnostic) -> str:
    """Render a diagnostic as ``file:line:column: severity: message``."""
    location = diagnostic.location
    severity = _SEVERITY_NAMES.get(diagnostic.severity, "diagnostic")
    if location.file is None:
        return f"{severity}: {diagnostic.spelling}"
    return f"{location.file.name}:{location.line}:{location.column}: {severity}: {diagnostic.spelling}"


def visible_files(tu: clang.cindex.TranslationUnit, filename: str, config: GeneratorConfig) -> list[str]:
    """Files among the main file and its inclusions that match a configured header."""
    files: list[str] = []
    if config.matches_header(filename):
        files.append(filename)
    for inclusion in tu.get_includes():
        header_path = str(inclusion.include.name)
        if header_path not in files and config.matches_header(header_path):
            files.append(header_path)
    return files


class LibclangBackend:
    """Parser backend using libclang.

    Properties
    ----------
    name : str
        Returns ``"libclang"``.

    Example
    -------
    ::

        backend = LibclangBackend()
        result = backend.parse(
            '#include "widget.h"\\n',
            "ffigen_input.h",
            config,
            include_dirs=["./include"],
            extra_args=["-DWIDGET_API="],
        )
    """

    def __init__(self) -> None:
        self._index: Optional[clang.cindex.Index] = None

    @property
    def name(self) -> str:
        return "libclang"

    def _get_index(self) -> clang.cindex.Index:
        if self._index is None:
            self._index = clang.cindex.Index.create()
        return self._index

    def parse(
        self,
        code: str,
        filename: str,
        config: GeneratorConfig,
        include_dirs: Optional[list[str]] = None,
        extra_args: Optional[list[str]] = None,
        use_default_includes: bool = True,
    ) -> ParseResult:
        """Parse C code and read its declarations.

        :param code: Source of the main file (raw, not preprocessed).
        :param filename: Name under which ``code`` is parsed. Declarations in
            it are read when it matches a configured header.
        :param config: Generator configuration; its ``cflags`` are passed on.
        :param include_dirs: Additional include directories (``-I`` flags).
        :param extra_args: Additional compiler arguments (e.g. ``["-std=c99"]``).
        :param use_default_includes: If True (default), add the system include
            directories reported by the system clang compiler.
        :returns: :class:`~ffigen.ir.ParseResult` with the filled index.
        :raises ffigen.resolver.UnsupportedTypeError: If a declaration uses a
            type with no mapping.
        :raises ffigen.ir.DuplicateDefinitionError: If an aggregate is
            defined twice.
        """
        args: list[str] = []
        if include_dirs:
            for inc_dir in include_dirs:
                args.append(f"-I{inc_dir}")
        if use_default_includes:
            args.extend(get_system_include_dirs())
        args.extend(config.cflags)
        if extra_args:
            args.extend(extra_args)

        tu = self._get_index().parse(
            filename,
            args=args,
            unsaved_files=[(filename, code)],
            options=clang.cindex.TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD,
        )

        diagnostics: list[str] = []
        for diagnostic in tu.diagnostics:
            message = format_diagnostic(diagnostic)
            print(f"clang diagnostic: {message}", file=sys.stderr)
            diagnostics.append(message)

        files = visible_files(tu, filename, config)
        index = DeclarationReader(tu, config, files).read()
        return ParseResult(path=filename, index=index, visible_files=files, diagnostics=diagnostics)
