"""Handler module discovery and loading.

Supplies the command registry with the modules to scan: the built-in
commands, any configured dotted module names, and every ``*.py`` file
in the handlers directory. Importing a module is what runs its
listen_to()/respond_to() decorators.
"""

import importlib
import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import List, Optional, Sequence

import structlog

logger = structlog.get_logger("tripwire.commands")

BUILTIN_MODULE = "tripwire.commands.builtin"


class HandlerLoader:
    """Discovers and imports handler modules.

    A module that fails to import is logged and skipped so that one
    broken file cannot keep the remaining handlers from loading.

    Args:
        modules: Dotted module names to import, in order.
        handlers_dir: Directory of standalone handler files (optional).
        allowlist: If set, only these file stems load from handlers_dir.
        include_builtin: Prepend the built-in commands module.
    """

    def __init__(
        self,
        modules: Sequence[str] = (),
        handlers_dir: Optional[Path] = None,
        allowlist: Optional[Sequence[str]] = None,
        include_builtin: bool = True,
    ):
        self.module_names = list(modules)
        self.handlers_dir = handlers_dir
        self.allowlist = allowlist
        self.include_builtin = include_builtin
        self.failures: List[str] = []

    @classmethod
    def from_config(cls, config) -> "HandlerLoader":
        """Build a loader from a Config instance."""
        return cls(
            modules=config.handler_modules,
            handlers_dir=config.handlers_dir,
            allowlist=config.handler_allowlist,
            include_builtin=config.builtin_commands_enabled,
        )

    def load(self) -> List[ModuleType]:
        """Import every handler module and return them in load order."""
        loaded: List[ModuleType] = []
        names = list(self.module_names)
        if self.include_builtin and BUILTIN_MODULE not in names:
            names.insert(0, BUILTIN_MODULE)

        for name in names:
            try:
                loaded.append(importlib.import_module(name))
            except Exception as e:
                self._failed(name, e)

        loaded.extend(self._load_directory())

        logger.info(
            "handler_loader_complete",
            modules_loaded=len(loaded),
            failed=len(self.failures),
        )
        return loaded

    def _load_directory(self) -> List[ModuleType]:
        if self.handlers_dir is None:
            return []
        if not self.handlers_dir.is_dir():
            logger.info("handler_loader_no_dir", path=str(self.handlers_dir))
            return []

        allowlist = self.allowlist
        if allowlist is not None and not isinstance(allowlist, (list, tuple)):
            logger.error("handler_allowlist_invalid_type", type=type(allowlist).__name__)
            allowlist = None

        modules = []
        for handler_file in sorted(self.handlers_dir.glob("*.py")):
            stem = handler_file.stem
            if stem.startswith("_"):
                continue
            if allowlist is not None and stem not in allowlist:
                logger.warning(
                    "handler_blocked_not_in_allowlist",
                    handler=stem,
                    allowlist=list(allowlist),
                )
                continue
            try:
                modules.append(self._load_file(stem, handler_file))
            except Exception as e:
                self._failed(stem, e)
        return modules

    def _load_file(self, stem: str, handler_file: Path) -> ModuleType:
        """Import a standalone handler file as ``tripwire_handlers.<stem>``."""
        module_name = f"tripwire_handlers.{stem}"
        spec = importlib.util.spec_from_file_location(module_name, handler_file)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load {handler_file}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise
        logger.info("handler_module_loaded", module=module_name, path=str(handler_file))
        return module

    def _failed(self, name: str, error: Exception) -> None:
        self.failures.append(name)
        logger.error(
            "handler_module_load_failed",
            module=name,
            error=str(error),
            error_type=type(error).__name__,
        )
