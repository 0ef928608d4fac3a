"""
onboarding_study.tier1_runtime.modules
────────────────────────────────────────
Auxiliary module loading and unloading for the study lifecycle.

Modules listed in ExperimentConfig.modules are imported at startup and
unloaded when the study ends, together with the controller's own config
and telemetry modules.
"""
from __future__ import annotations

import importlib
import sys
from typing import Iterable, Protocol, runtime_checkable

from onboarding_study.tier0_core.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class ModuleLoader(Protocol):
    def import_modules(self, names: Iterable[str]) -> None: ...

    def unload_modules(self, names: Iterable[str]) -> None: ...


class ImportlibModuleLoader:
    """Imports through importlib and unloads by dropping sys.modules entries."""

    def import_modules(self, names: Iterable[str]) -> None:
        for name in names:
            log.debug("modules.loading", module=name)
            importlib.import_module(name)

    def unload_modules(self, names: Iterable[str]) -> None:
        for name in names:
            log.debug("modules.unloading", module=name)
            sys.modules.pop(name, None)


class MockModuleLoader:
    """Records import/unload calls in order without touching sys.modules."""

    def __init__(self) -> None:
        self.imported: list[str] = []
        self.unloaded: list[str] = []
        self.unload_calls = 0

    def import_modules(self, names: Iterable[str]) -> None:
        for name in names:
            log.debug("modules.loading", module=name)
            self.imported.append(name)

    def unload_modules(self, names: Iterable[str]) -> None:
        self.unload_calls += 1
        for name in names:
            log.debug("modules.unloading", module=name)
            self.unloaded.append(name)


__all__ = ["ModuleLoader", "ImportlibModuleLoader", "MockModuleLoader"]
