import sys
from collections.abc import (
    Sequence,
)
from importlib.metadata import (
    version as get_version,
)
from typing import (
    IO,
)

import click

from .backends import (
    get_backend,
)
from .config import (
    GeneratorConfig,
    parse_header_patterns,
)
from .ir import (
    DuplicateDefinitionError,
    ParseResult,
)
from .ir_writer import (
    write_json,
)
from .keywords import (
    KEYWORD_SETS,
)
from .resolver import (
    UnsupportedTypeError,
)

__version__ = get_version("ffigen")

# In-memory main file; lives in the working directory so quoted includes resolve from there
MAIN_FILENAME = "ffigen_input.c"


def _debug_print(msg: str) -> None:
    """Print debug message to stderr."""
    print(f"[ffigen] {msg}", file=sys.stderr)


def generate(
    config: GeneratorConfig,
    include_dirs: Sequence[str] = (),
    extra_args: Sequence[str] = (),
    use_default_includes: bool = True,
    debug: bool = False,
) -> ParseResult:
    """Read the configured headers into a declaration index.

    Args:
        config: Generator configuration. Every string header pattern is
            ``#include``d; regular expressions only select which included
            files are read.
        include_dirs: Include search directories.
        extra_args: Extra arguments passed to the C front-end.
        use_default_includes: If True (default), automatically detect and add
            system include directories.
        debug: Print debug info to stderr.

    Returns:
        The parse result, holding the filled index and the front-end
        diagnostics.

    Raises:
        UnsupportedTypeError: A declaration uses a type with no mapping.
        DuplicateDefinitionError: A struct or union is defined twice.
        ValueError: libclang cannot be loaded.
    """
    code = "".join(f'#include "{header}"\n' for header in config.include_headers)

    if debug:
        _debug_print(f"Module: {config.module_name}")
        _debug_print(f"Headers: {', '.join(str(h) for h in config.headers)}")
        if config.prefixes:
            _debug_print(f"Prefixes: {', '.join(config.prefixes)}")

    backend = get_backend()
    result = backend.parse(
        code,
        MAIN_FILENAME,
        config,
        include_dirs=list(include_dirs) or None,
        extra_args=list(extra_args) or None,
        use_default_includes=use_default_includes,
    )

    if debug:
        _debug_print(f"Visible files: {', '.join(result.visible_files) or '(none)'}")
        _debug_print(f"Found {len(result.index)} declarations")
        for decl in result.index:
            _debug_print(f"  {type(decl).__name__}: {decl}")

    return result


CONTEXT_SETTINGS: dict[str, list[str]] = dict(help_option_names=["-h", "--help"])


@click.command(
    context_settings=CONTEXT_SETTINGS,
    help="""Read C headers and dump the declarations found in them as JSON.

\b
HEADER is a header to #include, or /regex/ selecting included files to read.
""",
)
# === General options ===
@click.option("--version", "-v", is_flag=True, help="Print version and exit.")
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Print debug info to stderr.",
)
@click.option(
    "--output",
    "-o",
    type=click.File("w"),
    default="-",
    metavar="<file>",
    help="Write the JSON dump here (default: stdout).",
)
# === Generator options ===
@click.option("--module-name", "-m", metavar="<name>", help="Name of the binding module.")
@click.option("--ffi-lib", metavar="<lib>", help="Native library the bindings load.")
@click.option(
    "--prefix",
    "-p",
    "prefixes",
    multiple=True,
    metavar="<prefix>",
    help="Strip prefix from identifiers. Can be specified multiple times.",
)
@click.option(
    "--blocking",
    multiple=True,
    metavar="<function>",
    help="Mark function as blocking. Can be specified multiple times.",
)
@click.option(
    "--keywords",
    "keyword_set",
    type=click.Choice(sorted(KEYWORD_SETS), case_sensitive=False),
    default="python",
    help="Reserved words of the target language (default: python).",
)
@click.option(
    "--reserved-word",
    "reserved_words",
    multiple=True,
    metavar="<word>",
    help="Additional reserved word.",
)
# === Preprocessing options ===
@click.option(
    "--include-dir",
    "-I",
    multiple=True,
    metavar="<dir>",
    help="Add include search path.",
)
@click.option(
    "--define",
    "-D",
    "defines",
    multiple=True,
    metavar="<macro>",
    help="Define preprocessor macro.",
)
@click.option(
    "--std",
    metavar="<std>",
    help="Language standard (e.g., c99, c11).",
)
@click.option(
    "--clang-arg",
    multiple=True,
    metavar="<arg>",
    help="Pass argument to clang.",
)
@click.option(
    "--no-default-includes",
    is_flag=True,
    help="Disable system include auto-detection.",
)
@click.argument("headers", nargs=-1)
def cli(
    version: bool,
    debug: bool,
    output: IO[str],
    module_name: str | None,
    ffi_lib: str | None,
    prefixes: tuple[str, ...],
    blocking: tuple[str, ...],
    keyword_set: str,
    reserved_words: tuple[str, ...],
    include_dir: tuple[str, ...],
    defines: tuple[str, ...],
    std: str | None,
    clang_arg: tuple[str, ...],
    no_default_includes: bool,
    headers: tuple[str, ...],
) -> None:
    if version:
        print(__version__)
        return

    # Build extra_args list from CLI options
    extra_args: list[str] = []
    for define in defines:
        extra_args.append(f"-D{define}")
    if std:
        extra_args.append(f"-std={std}")
    extra_args.extend(clang_arg)

    try:
        config = GeneratorConfig(
            module_name=module_name or "",
            headers=parse_header_patterns(headers),
            ffi_lib=ffi_lib,
            prefixes=prefixes,
            blocking=frozenset(blocking),
            reserved_words=KEYWORD_SETS[keyword_set.lower()] | frozenset(reserved_words),
            cflags=tuple(extra_args),
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(2) from e

    try:
        result = generate(
            config,
            include_dirs=include_dir,
            use_default_includes=not no_default_includes,
            debug=debug,
        )
    except (UnsupportedTypeError, DuplicateDefinitionError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e

    output.write(write_json(result, config))
