"""
onboarding_study.tier3_onboarding.bridge
──────────────────────────────────────────
Relays the onboarding content protocol to the controller:

  {"action": "set-prefs", "params": [{"name": ..., "value": ...}, ...]}
      → PreferenceGateway.set_preferences (no reply)
  {"action": "get-login-status"}
      → reply "Onboarding:ResponseLoginStatus" {"isLoggedIn": bool}

Any other action is ignored.
"""
from __future__ import annotations

from typing import Any

from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.metrics import bridge_messages
from onboarding_study.tier1_runtime.messages import (
    CONTENT_MESSAGE,
    LOGIN_STATUS_RESPONSE,
    ContentMessage,
    LoginStatusReply,
    LoginStatusRequest,
    MessageManager,
    SetPrefsMessage,
    validate_message,
)
from onboarding_study.tier1_runtime.prefs import PrefEntry, PreferenceGateway
from onboarding_study.tier2_study.accounts import SyncTourChecker

log = get_logger(__name__)


class ContentMessageBridge:
    def __init__(
        self,
        messages: MessageManager,
        gateway: PreferenceGateway,
        tracker: SyncTourChecker,
    ) -> None:
        self._messages = messages
        self._gateway = gateway
        self._tracker = tracker
        self._listening = False

    @property
    def listening(self) -> bool:
        return self._listening

    def start(self) -> None:
        if self._listening:
            return
        self._messages.add_message_listener(CONTENT_MESSAGE, self.receive_message)
        self._listening = True

    def stop(self) -> None:
        if not self._listening:
            return
        self._messages.remove_message_listener(CONTENT_MESSAGE, self.receive_message)
        self._listening = False

    def receive_message(self, msg: ContentMessage) -> None:
        action = _action_of(msg.data)
        if action == "set-prefs":
            bridge_messages(action=action).inc()
            payload = validate_message(SetPrefsMessage, msg.data)
            self._gateway.set_preferences(
                PrefEntry(name=p.name, value=p.value) for p in payload.params
            )
        elif action == "get-login-status":
            bridge_messages(action=action).inc()
            validate_message(LoginStatusRequest, msg.data)
            reply = LoginStatusReply(is_logged_in=self._tracker.is_logged_in())
            msg.target.send_async_message(
                LOGIN_STATUS_RESPONSE, reply.model_dump(by_alias=True)
            )
        else:
            log.debug("bridge.ignored", action=action)


def _action_of(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("action")
    return None


__all__ = ["ContentMessageBridge"]
