"""Shared fixtures for tripwire tests."""

import types

import pytest

from tripwire.commands.registry import set_registry


@pytest.fixture(autouse=True)
def _reset_global_registry():
    """Keep the process-wide registry from leaking between tests."""
    set_registry(None)
    yield
    set_registry(None)


@pytest.fixture
def make_module():
    """Build a throwaway handler module holding the given classes."""
    counter = iter(range(10_000))
    original_modules = {}

    def factory(*classes, name=None):
        module_name = name or f"tests_handlers_{next(counter)}"
        module = types.ModuleType(module_name)
        for cls in classes:
            original_modules.setdefault(cls, cls.__module__)
            cls.__module__ = module_name
            setattr(module, cls.__name__, cls)
        return module

    yield factory
    for cls, module_name in original_modules.items():
        cls.__module__ = module_name
