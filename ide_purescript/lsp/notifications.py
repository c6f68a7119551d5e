"""
Notification relay: four named, replaceable hooks for build progress.

Every session forwards the matching raw server notification to the handler
currently registered under the hook name. The relay is shared by all roots;
a handler that needs per-root behaviour inspects the payload.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from ide_purescript.lsp.lsp_types import HookName
from ide_purescript.utils.logger import setup_logger

logger = setup_logger(__name__)

HookHandler = Callable[[Any], None]


def _noop(payload: Any) -> None:
    return None


class NotificationRelay:
    def __init__(self) -> None:
        self._handlers: Dict[HookName, HookHandler] = {}
        self.reset()

    def reset(self) -> None:
        """Restore the no-op handler for every hook."""
        self._handlers = {hook: _noop for hook in HookName}

    def handler(self, hook: HookName) -> HookHandler:
        return self._handlers[HookName(hook)]

    def set_hook(self, hook: HookName, handler: HookHandler) -> HookHandler:
        """Replace the handler for ``hook`` and return the previous one."""
        hook = HookName(hook)
        previous = self._handlers[hook]
        self._handlers[hook] = handler
        return previous

    def set_diagnostics_begin(self, handler: HookHandler) -> HookHandler:
        return self.set_hook(HookName.DIAGNOSTICS_BEGIN, handler)

    def set_diagnostics_end(self, handler: HookHandler) -> HookHandler:
        return self.set_hook(HookName.DIAGNOSTICS_END, handler)

    def set_clean_begin(self, handler: HookHandler) -> HookHandler:
        return self.set_hook(HookName.CLEAN_BEGIN, handler)

    def set_clean_end(self, handler: HookHandler) -> HookHandler:
        return self.set_hook(HookName.CLEAN_END, handler)

    def emit(self, hook: HookName, payload: Any = None) -> None:
        """Call the current handler; handler failures never reach the session."""
        hook = HookName(hook)
        handler = self._handlers[hook]
        try:
            handler(payload)
        except Exception:
            logger.exception(f"Handler for hook {hook.value} failed")
