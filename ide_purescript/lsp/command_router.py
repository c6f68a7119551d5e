"""
Routes editor commands to the session that owns the document.

Two kinds of command share one name space: static commands, forwarded
verbatim to the server as workspace/executeCommand, and dynamic commands a
session announces once it is ready, which are called directly.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ide_purescript.lsp.lsp_session import BaseLspServerSession
from ide_purescript.lsp.lsp_types import TextDocument
from ide_purescript.lsp.root_resolver import ProjectRootResolver
from ide_purescript.lsp.session_registry import SessionRegistry
from ide_purescript.output import OutputChannel
from ide_purescript.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)


class CommandRouter:
    def __init__(
        self,
        resolver: ProjectRootResolver,
        registry: SessionRegistry,
        output: OutputChannel,
        static_commands: Iterable[str],
    ) -> None:
        self._resolver = resolver
        self._registry = registry
        self._output = output
        self._static_commands: Tuple[str, ...] = tuple(static_commands)
        self._static_set = frozenset(self._static_commands)
        # dynamic command name -> root of the last session that announced it
        self._owners: Dict[str, str] = {}
        self._pending: Set[asyncio.Future] = set()

    @property
    def static_commands(self) -> Tuple[str, ...]:
        return self._static_commands

    def is_static(self, command: str) -> bool:
        return command in self._static_set

    def registered_commands(self) -> List[str]:
        return sorted(self._static_set | set(self._owners))

    def command_owner(self, command: str) -> Optional[str]:
        return self._owners.get(command)

    def register_session_commands(self, session: BaseLspServerSession) -> List[str]:
        """Merge a ready session's announced commands into the global name space.

        Returns the names that were not registered before. Names claimed by
        a static command are skipped; for names another root already
        announced, the latest announcement becomes the owner.
        """
        added: List[str] = []
        for name in session.commands:
            if name in self._static_set:
                logger.debug(f"Ignoring announced command {name}: it is a static command")
                continue
            previous = self._owners.get(name)
            if previous is None:
                added.append(name)
            elif previous != session.root:
                logger.info(
                    f"Command {name} announced by {session.root}, previously owned by {previous}"
                )
            self._owners[name] = session.root
        if added:
            logger.info(f"Registered {len(added)} commands for {session.root}")
        return added

    async def dispatch(
        self,
        document: TextDocument,
        command: str,
        args: Optional[Sequence[Any]] = None,
    ) -> bool:
        """Route ``command`` for ``document``; never raises.

        Returns True when the command was forwarded or invoked.
        """
        try:
            return await self._dispatch(document, command, list(args or []))
        except Exception as exc:
            logger.exception(f"Dispatch of {command} failed")
            self._output.error(f"Command {command} failed: {exc}")
            return False

    async def _dispatch(self, document: TextDocument, command: str, args: List[Any]) -> bool:
        root = await self._resolver.resolve(document)
        if not root:
            self._output.append_line(f"Didn't find project root for {document.uri}")
            return False

        session = self._registry.get(root)
        if session is None:
            self._output.append_line(f"Didn't find language client for {document.uri}")
            return False
        if not session.is_ready:
            self._output.append_line(
                f"Language client for {root} is {session.state.value}; ignoring {command}"
            )
            return False

        with log_context(root=root):
            if command in self._static_set:
                logger.debug(f"Forwarding {command} to the language server")
                self._schedule(session.execute_command(command, args), command, root)
                return True

            handler = session.commands.get(command)
            if handler is None:
                self._output.append_line(f"Unknown command {command} for {root}")
                return False

            logger.debug(f"Invoking session command {command}")
            result = handler(args)
            if inspect.isawaitable(result):
                self._schedule(result, command, root)
            return True

    def _schedule(self, awaitable: Awaitable[Any], command: str, root: str) -> None:
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)

        def done(fut: asyncio.Future) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.warning(f"Command {command} for {root} failed: {exc!r}")
                self._output.error(f"Command {command} failed for {root}: {exc}")

        future.add_done_callback(done)

    async def join(self) -> None:
        """Wait until every forwarded command has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
