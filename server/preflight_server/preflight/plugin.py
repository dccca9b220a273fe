"""Host integration for the memory preflight plugin.

The host calls ``before_agent_start`` with the turn event before the agent
generates a reply; a returned ``{"prependContext": ...}`` is spliced into
the assistant's context.  ``start``/``stop`` follow the host's service
lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from preflight import config as cfg
from preflight.models import PreflightResult, Turn
from preflight.observability.tracing import record_metric
from preflight.orchestrator import PreflightOrchestrator

logger = logging.getLogger(__name__)

PLUGIN_ID = "memory-preflight"
PLUGIN_NAME = "Memory Preflight (Hybrid)"
PLUGIN_DESCRIPTION = "Auto-recall: QMD (fast/local) with semantic fallback"


class MemoryPreflightPlugin:
    id = PLUGIN_ID
    name = PLUGIN_NAME
    description = PLUGIN_DESCRIPTION

    def __init__(
        self,
        orchestrator: PreflightOrchestrator | None = None,
        *,
        tool_factory: Optional[Callable[[], Any]] = None,
        timeout: float | None = None,
    ) -> None:
        self._orchestrator = orchestrator or PreflightOrchestrator.from_config(tool_factory)
        self.timeout = timeout if timeout is not None else cfg.PREFLIGHT_TIMEOUT_SECONDS
        logger.info("%s: plugin registered (keyword=%s, semantic=%s)",
                    PLUGIN_ID, cfg.KEYWORD_BACKEND, cfg.SEMANTIC_BACKEND)

    @property
    def orchestrator(self) -> PreflightOrchestrator:
        return self._orchestrator

    async def preflight(self, turn: Turn) -> PreflightResult:
        """Run the orchestrator under the turn-level timeout."""
        try:
            return await asyncio.wait_for(self._orchestrator.run(turn), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s: preflight timed out after %.1fs", PLUGIN_ID, self.timeout)
            record_metric("preflight_timeouts")
            return PreflightResult.skipped("timeout")
        except Exception:
            logger.exception("%s: preflight failed", PLUGIN_ID)
            record_metric("preflight_errors")
            return PreflightResult.skipped("error")

    async def before_agent_start(self, event: Any) -> Optional[Dict[str, str]]:
        """Host hook: returns ``{"prependContext": ...}`` or ``None``."""
        turn = Turn.from_event(event)
        logger.debug("%s: hook fired, prompt length %d", PLUGIN_ID, len(turn.prompt))
        result = await self.preflight(turn)
        if result.augmented:
            logger.info("%s: %s, %d hints", PLUGIN_ID, result.reason, len(result.hits))
        else:
            logger.debug("%s: no augmentation (%s)", PLUGIN_ID, result.reason)
        return result.prepend_context()

    def start(self) -> None:
        logger.info("%s: active", PLUGIN_ID)

    async def stop(self) -> None:
        await self._orchestrator.close()
        logger.info("%s: stopped", PLUGIN_ID)


def register(api: Any) -> MemoryPreflightPlugin:
    """Wire the plugin into a host API exposing ``on`` and ``register_service``.

    The host's memory search tool factory, when present, becomes the
    semantic fallback backend.
    """
    tools = getattr(getattr(api, "runtime", None), "tools", None)
    create_tool = getattr(tools, "create_memory_search_tool", None)
    tool_factory = None
    if create_tool is not None:
        def tool_factory():
            return create_tool(config=getattr(api, "config", None))

    plugin = MemoryPreflightPlugin(tool_factory=tool_factory)
    api.on("before_agent_start", plugin.before_agent_start)
    api.register_service({"id": PLUGIN_ID, "start": plugin.start, "stop": plugin.stop})
    return plugin
