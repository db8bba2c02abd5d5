"""Shared pytest fixtures for ffigen tests."""

import pytest

from ffigen.backends import get_backend, is_backend_available
from ffigen.config import GeneratorConfig


@pytest.fixture
def backend():
    """libclang backend instance.

    Fails if libclang cannot be loaded; exclude these tests with
        pytest -m "not libclang"
    """
    if not is_backend_available("libclang"):
        pytest.fail("libclang backend not available - use pytest -m 'not libclang' to exclude")
    return get_backend("libclang")


@pytest.fixture
def read_header(backend):
    """Parse in-memory header code and return the :class:`~ffigen.ir.ParseResult`.

    Keyword arguments other than ``filename`` and ``include_dirs`` go to
    :class:`~ffigen.config.GeneratorConfig`; by default the header itself is
    the only visible file.
    """

    def _read(code, filename="test.h", include_dirs=None, **config_options):
        config_options.setdefault("module_name", "Test")
        config_options.setdefault("headers", (filename,))
        config = GeneratorConfig(**config_options)
        return backend.parse(code, filename, config, include_dirs=include_dirs, use_default_includes=False)

    return _read
