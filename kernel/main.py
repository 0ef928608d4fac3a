"""Onboarding study kernel: minimal WebSocket host.

Runs the study controller against in-memory host services and exposes the
content message channel over WebSockets:

  /content  : one connection per content context; JSON frames
              {"name": "Onboarding:OnContentMessage", "data": {...}}
              replies are sent back as {"name": ..., "data": ...}
  /health   : phase, variation and connected contexts

Connection drop = content context closed.
"""

from __future__ import annotations

import asyncio
import json
import signal

import websockets

from onboarding_study.tier0_core.config import get_settings, load_experiment_config
from onboarding_study.tier0_core.errors import StudyError
from onboarding_study.tier0_core.logging import get_logger
from onboarding_study.tier0_core.metrics import start_metrics_server
from onboarding_study.tier0_core.reasons import LifecycleReason
from onboarding_study.tier1_runtime.messages import ContentMessage
from onboarding_study.tier1_runtime.observers import BROWSER_READY, SESSION_RESTORED
from onboarding_study.tier3_onboarding.context import AddonData, HostContext, in_memory_host
from onboarding_study.tier3_onboarding.lifecycle import StudyOrchestrator

log = get_logger("kernel")

ADDON = AddonData(id="onboarding-tour-study@shield.mozilla.org", version="1.0.0")

# Connection bookkeeping
_contexts: dict[str, "WebSocketTarget"] = {}


class WebSocketTarget:
    """MessageTarget that forwards replies to one content connection."""

    def __init__(self, ws) -> None:
        self._ws = ws
        self._pending: set[asyncio.Task] = set()

    def send_async_message(self, name: str, data: dict) -> None:
        task = asyncio.get_running_loop().create_task(
            self._ws.send(json.dumps({"name": name, "data": data}))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


async def handle_content(ws, host: HostContext) -> None:
    """Handle /content WebSocket sessions (one content context each)."""
    context_id = f"content-{id(ws):x}"
    target = WebSocketTarget(ws)
    _contexts[context_id] = target
    log.info("content.connected", context=context_id)
    try:
        async for raw in ws:
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("content.bad_frame", context=context_id)
                continue
            if not isinstance(frame, dict) or "name" not in frame:
                log.warning("content.bad_frame", context=context_id)
                continue
            try:
                await host.messages.dispatch(
                    ContentMessage(name=frame["name"], data=frame.get("data"), target=target)
                )
            except StudyError as exc:
                # A rejected message never ends the content session.
                log.warning("content.rejected", context=context_id, **exc.to_dict()["error"])
    finally:
        log.info("content.disconnected", context=context_id)
        _contexts.pop(context_id, None)


def make_router(host: HostContext, orchestrator: StudyOrchestrator):
    async def _router(ws):
        """Route incoming WebSocket connections by path."""
        path = ws.request.path if hasattr(ws, "request") else getattr(ws, "path", "/")
        if path == "/content":
            await handle_content(ws, host)
        elif path == "/health":
            variation = orchestrator.variation
            await ws.send(json.dumps({
                "status": "ok",
                "phase": orchestrator.phase.value,
                "variation": variation.name if variation else None,
                "contexts": len(_contexts),
            }))
        else:
            await ws.close(4004, f"Unknown path: {path}. Use /content or /health.")

    return _router


async def main() -> None:
    settings = get_settings()
    config = load_experiment_config(settings)
    if settings.metrics_enabled:
        start_metrics_server(settings.metrics_port)

    host = in_memory_host(starting_up=True)
    orchestrator = StudyOrchestrator(config, host, settings)

    async def _uninstall() -> None:
        await orchestrator.shutdown(ADDON, LifecycleReason.ADDON_UNINSTALL)
        orchestrator.uninstall(ADDON, LifecycleReason.ADDON_UNINSTALL)

    host.study_utils.on_uninstall = _uninstall

    log.info("kernel.starting", host=settings.kernel_host, port=settings.kernel_port)
    orchestrator.install(ADDON, LifecycleReason.ADDON_INSTALL)
    await orchestrator.startup(ADDON, LifecycleReason.ADDON_INSTALL)
    await host.bus.notify(BROWSER_READY)
    await host.bus.notify(SESSION_RESTORED)

    stop = asyncio.get_running_loop().create_future()

    def _shutdown():
        if not stop.done():
            stop.set_result(True)

    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, _shutdown)

    async with websockets.serve(make_router(host, orchestrator), settings.kernel_host, settings.kernel_port):
        log.info("kernel.ready", url=f"ws://{settings.kernel_host}:{settings.kernel_port}")
        await stop

    await orchestrator.shutdown(ADDON, LifecycleReason.APP_SHUTDOWN)
    log.info("kernel.stopped", phase=orchestrator.phase.value)


if __name__ == "__main__":
    asyncio.run(main())
