"""
Registry of protocol sessions, one per project root.

Sessions are created lazily on the first document open under a root and
live until the whole extension is deactivated or their connection closes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from ide_purescript.lsp.lsp_session import BaseLspServerSession
from ide_purescript.lsp.lsp_types import SessionState
from ide_purescript.output import OutputChannel
from ide_purescript.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)

SessionFactory = Callable[[str], BaseLspServerSession]
ReadyCallback = Callable[[BaseLspServerSession], None]


class SessionRegistry:
    """
    Maps project roots to their protocol session.

    Insertion is idempotent: concurrent ``ensure_session`` calls for the same
    root share the first in-flight session instead of spawning a second
    server. The entry is registered before the session starts, so callers
    arriving during startup join it.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        output: OutputChannel,
        on_ready: Optional[ReadyCallback] = None,
    ) -> None:
        self._session_factory = session_factory
        self._output = output
        self._on_ready = on_ready
        self._sessions: Dict[str, BaseLspServerSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, root: str) -> bool:
        return root in self._sessions

    def roots(self) -> List[str]:
        return sorted(self._sessions)

    def get(self, root: str) -> Optional[BaseLspServerSession]:
        """Current session for ``root``; never creates one."""
        return self._sessions.get(root)

    async def ensure_session(self, root: str) -> Optional[BaseLspServerSession]:
        """Return the READY session for ``root``, starting it if needed.

        Returns None when the session could not be started; the failure is
        written to the output channel and a later call may retry.
        """
        async with self._lock:
            session = self._sessions.get(root)
            created = session is None
            if created:
                try:
                    session = self._session_factory(root)
                except Exception as exc:
                    logger.exception(f"Could not create session for {root}")
                    self._output.error(f"Could not create language client for {root}: {exc}")
                    return None
                session.subscribe(self._on_transition)
                self._sessions[root] = session

        if not created:
            state = await session.wait_settled()
            return session if state is SessionState.READY else None

        with log_context(root=root):
            try:
                await session.start()
            except Exception as exc:
                logger.warning(f"Session start failed: {exc}")
                self._discard(root, session)
                self._output.error(str(exc))
                return None

            logger.info("Language server session ready")
            if self._on_ready is not None:
                try:
                    self._on_ready(session)
                except Exception:
                    logger.exception("Ready callback failed")
        return session

    def _on_transition(
        self,
        session: BaseLspServerSession,
        old_state: SessionState,
        new_state: SessionState,
    ) -> None:
        if new_state.is_terminal:
            if self._discard(session.root, session):
                logger.info(f"Removed {new_state.value} session for {session.root}")

    def _discard(self, root: str, session: BaseLspServerSession) -> bool:
        if self._sessions.get(root) is session:
            del self._sessions[root]
            return True
        return False

    async def shutdown_all(self) -> None:
        """Stop every session and clear the registry, whatever the outcome."""
        async with self._lock:
            sessions = list(self._sessions.items())
            self._sessions.clear()

        if not sessions:
            return

        results = await asyncio.gather(
            *(session.stop() for _, session in sessions), return_exceptions=True
        )
        for (root, _), result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.warning(f"Error stopping language server for {root}: {result!r}")
            else:
                logger.info(f"Stopped language server for {root}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_count": len(self._sessions),
            "sessions": {
                root: {
                    "state": session.state.value,
                    "commands": sorted(session.commands),
                }
                for root, session in sorted(self._sessions.items())
            },
        }
