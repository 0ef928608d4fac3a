"""
onboarding_study.tier0_core.reasons
─────────────────────────────────────
Add-on lifecycle reason codes as delivered by the host to startup(),
shutdown(), install() and uninstall().
"""
from __future__ import annotations

from enum import IntEnum


class LifecycleReason(IntEnum):
    APP_STARTUP = 1      # The application is starting up.
    APP_SHUTDOWN = 2     # The application is shutting down.
    ADDON_ENABLE = 3     # The add-on is being enabled.
    ADDON_DISABLE = 4    # The add-on is being disabled. Also sent during uninstallation.
    ADDON_INSTALL = 5    # The add-on is being installed.
    ADDON_UNINSTALL = 6  # The add-on is being uninstalled.
    ADDON_UPGRADE = 7    # The add-on is being upgraded.
    ADDON_DOWNGRADE = 8  # The add-on is being downgraded.

    @classmethod
    def from_code(cls, code: int | str | LifecycleReason) -> LifecycleReason:
        """Resolve an integer code or a reason name. Unknown values raise ValueError."""
        if isinstance(code, cls):
            return code
        if isinstance(code, str):
            try:
                return cls[code.upper()]
            except KeyError:
                raise ValueError(f"Unknown lifecycle reason: {code!r}") from None
        return cls(code)


TERMINATING_REASONS = frozenset({
    LifecycleReason.ADDON_DISABLE,
    LifecycleReason.ADDON_UNINSTALL,
})


def describe(code: int | LifecycleReason) -> str:
    """Name of a reason code for log lines; the raw value when unknown."""
    try:
        return LifecycleReason.from_code(code).name
    except ValueError:
        return str(code)


__all__ = ["LifecycleReason", "TERMINATING_REASONS", "describe"]
