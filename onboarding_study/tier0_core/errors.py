"""
onboarding_study.tier0_core.errors
────────────────────────────────────
Error taxonomy for the study controller. Only conditions this layer owns get a
class here; failures raised by host collaborators (telemetry, module loader,
preference store) propagate unchanged.
"""
from __future__ import annotations

from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class StudyError(Exception):
    """
    Base class for all study errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - user_message: short human readable summary
    - detail: internal context for logs
    """

    code: str = "study_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected study error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ── Typed error classes ───────────────────────────────────────────────────────

class ConfigurationError(StudyError):
    """Misconfiguration detected at startup."""
    code = "configuration_error"


class PreferenceTypeError(StudyError, TypeError):
    """A preference write whose type tag or value does not match."""
    code = "type_mismatch"

    def __init__(
        self,
        pref_name: str,
        type_tag: Any,
        user_message: str | None = None,
        **metadata: Any,
    ) -> None:
        self.pref_name = pref_name
        self.type_tag = type_tag
        super().__init__(
            user_message=user_message
            or f"Unexpected type ({type_tag}) for preference {pref_name}.",
            pref_name=pref_name,
            type_tag=str(type_tag),
            **metadata,
        )


class ValidationError(StudyError):
    """Malformed message payload."""
    code = "validation_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Validation failed.",
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, **metadata)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


class LifecycleError(StudyError):
    """Illegal lifecycle phase transition."""
    code = "lifecycle_error"


__all__ = [
    "StudyError",
    "ConfigurationError",
    "PreferenceTypeError",
    "ValidationError",
    "LifecycleError",
]
