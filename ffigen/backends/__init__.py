"""Parser backends for ffigen.

A backend turns header text into a populated
:class:`~ffigen.ir.DeclarationIndex`, wrapped in a
:class:`~ffigen.ir.ParseResult`.

Available Backends
------------------
libclang
    LLVM clang-based parser. Requires a loadable libclang shared library;
    the ``libclang`` package ships one.

Example
-------
::

    from ffigen.backends import get_backend

    backend = get_backend()
    result = backend.parse(code, "ffigen_input.h", config)
"""

from __future__ import (
    annotations,
)

import re
import shutil
import subprocess
from typing import (
    TYPE_CHECKING,
    Optional,
)

if TYPE_CHECKING:
    from ffigen.backends.libclang_backend import (
        LibclangBackend,
    )

DEFAULT_BACKEND = "libclang"


def list_backends() -> list[str]:
    """List names of the backends that can be passed to :func:`get_backend`."""
    return [DEFAULT_BACKEND] if is_backend_available(DEFAULT_BACKEND) else []


def is_backend_available(name: str = DEFAULT_BACKEND) -> bool:
    """Check if a backend can be instantiated.

    :param name: Backend name to check.
    :returns: True if the backend's native library could be loaded.
    """
    if name != DEFAULT_BACKEND:
        return False
    try:
        # pylint: disable=import-outside-toplevel
        from ffigen.backends.libclang_backend import (
            is_system_libclang_available,
        )
    except ImportError:
        return False
    return is_system_libclang_available()


def get_backend(name: Optional[str] = None) -> LibclangBackend:
    """Get a parser backend instance.

    :param name: Backend name, or None for the default (``"libclang"``).
    :returns: New backend instance.
    :raises ValueError: If the backend is unknown or cannot be loaded. The
        message says how to fix the installation.
    """
    name = name or DEFAULT_BACKEND
    if name != DEFAULT_BACKEND:
        raise ValueError(f"Unknown backend: {name!r}. Available: {DEFAULT_BACKEND}")

    if not is_backend_available(name):
        raise ValueError(_missing_libclang_message())

    # pylint: disable=import-outside-toplevel
    from ffigen.backends.libclang_backend import (
        LibclangBackend,
    )

    return LibclangBackend()


def _missing_libclang_message() -> str:
    version = _detect_system_clang_version()
    if version:
        return (
            "libclang backend could not load the libclang library.\n"
            f"Detected LLVM version {version} on your system.\n"
            f"Install matching bindings with: pip install 'libclang=={version}.*'"
        )
    return (
        "libclang backend could not load the libclang library.\n"
        "Install it with: pip install libclang\n"
        "or point LD_LIBRARY_PATH (DYLD_LIBRARY_PATH on macOS) at an LLVM installation."
    )


def _detect_system_clang_version() -> Optional[str]:
    """Detect the system libclang/LLVM version.

    :returns: Major version string like "18", or None if not detected.
    """
    llvm_config = shutil.which("llvm-config")
    if llvm_config:
        try:
            result = subprocess.run(
                [llvm_config, "--version"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )
            if result.returncode == 0:
                major = result.stdout.strip().split(".")[0]
                if major.isdigit():
                    return major
        except (subprocess.SubprocessError, OSError):
            pass

    clang = shutil.which("clang")
    if clang:
        try:
            result = subprocess.run(
                [clang, "--version"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )
            if result.returncode == 0:
                match = re.search(r"clang version (\d+)", result.stdout)
                if match:
                    return match.group(1)
        except (subprocess.SubprocessError, OSError):
            pass

    return None
