"""
onboarding_study.tier1_runtime.messages
─────────────────────────────────────────
Message channel between isolated content contexts and the controller, plus
the Pydantic v2 payload models for the onboarding protocol.

Validation failures surface as study ValidationError (not raw Pydantic
errors) so callers see one error type.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Protocol, Type, TypeVar, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from onboarding_study.tier0_core.errors import ValidationError

CONTENT_MESSAGE = "Onboarding:OnContentMessage"
LOGIN_STATUS_RESPONSE = "Onboarding:ResponseLoginStatus"

T = TypeVar("T", bound=BaseModel)


# ── Payload models ────────────────────────────────────────────────────────────

class PrefParam(BaseModel):
    name: str
    value: Any = None


class SetPrefsMessage(BaseModel):
    action: Literal["set-prefs"]
    params: list[PrefParam] = Field(default_factory=list)


class LoginStatusRequest(BaseModel):
    action: Literal["get-login-status"]


class LoginStatusReply(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_logged_in: bool


def validate_message(model: Type[T], data: Any) -> T:
    """
    Validate raw message data against a Pydantic model.
    Raises study ValidationError (not Pydantic's) on failure.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        fields = {
            ".".join(str(loc) for loc in err["loc"]): err["msg"]
            for err in exc.errors()
        }
        raise ValidationError(
            code="validation_error",
            user_message="Content message validation failed.",
            fields=fields,
        ) from exc


# ── Channel ───────────────────────────────────────────────────────────────────

@runtime_checkable
class MessageTarget(Protocol):
    """The content context a message came from; replies go back through it."""

    def send_async_message(self, name: str, data: dict[str, Any]) -> None: ...


@dataclass
class ContentMessage:
    name: str
    data: Any
    target: MessageTarget


Listener = Callable[[ContentMessage], Union[None, Awaitable[None]]]


@runtime_checkable
class MessageManager(Protocol):
    def add_message_listener(self, name: str, listener: Listener) -> None: ...

    def remove_message_listener(self, name: str, listener: Listener) -> None: ...

    def load_frame_script(self, url: str, allow_delayed_load: bool = True) -> None: ...

    async def dispatch(self, message: ContentMessage) -> None: ...


class RecordingTarget:
    """MessageTarget that keeps every reply; used for tests and local content."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    def send_async_message(self, name: str, data: dict[str, Any]) -> None:
        self.sent.append((name, data))


class InMemoryMessageManager:
    """In-process message manager for the kernel host and tests."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self.frame_scripts: list[tuple[str, bool]] = []

    def add_message_listener(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.setdefault(name, [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_message_listener(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))

    def load_frame_script(self, url: str, allow_delayed_load: bool = True) -> None:
        self.frame_scripts.append((url, allow_delayed_load))

    async def dispatch(self, message: ContentMessage) -> None:
        for listener in list(self._listeners.get(message.name, [])):
            result = listener(message)
            if inspect.isawaitable(result):
                await result


__all__ = [
    "CONTENT_MESSAGE",
    "LOGIN_STATUS_RESPONSE",
    "PrefParam",
    "SetPrefsMessage",
    "LoginStatusRequest",
    "LoginStatusReply",
    "validate_message",
    "MessageTarget",
    "ContentMessage",
    "Listener",
    "MessageManager",
    "RecordingTarget",
    "InMemoryMessageManager",
]
