"""
Extension composition root.

Owns the process-wide state of the session layer (session registry, hook
handlers, interceptor chain) and exposes the editor-facing entry points:
document open, command execution, activation and deactivation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Union

from ide_purescript.config import ExtensionConfig
from ide_purescript.lsp.command_router import CommandRouter
from ide_purescript.lsp.lsp_session import BaseLspServerSession, CommandProvider
from ide_purescript.lsp.lsp_types import MessageKind, TextDocument, WorkspaceFolders
from ide_purescript.lsp.middleware import Interceptor, MiddlewarePipeline
from ide_purescript.lsp.notifications import HookHandler, NotificationRelay
from ide_purescript.lsp.pygls_client_session import (
    PyglsClientSession,
    capability_command_provider,
)
from ide_purescript.lsp.root_resolver import ProjectRootResolver
from ide_purescript.lsp.session_registry import SessionFactory, SessionRegistry
from ide_purescript.output import OutputChannel
from ide_purescript.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ExtensionApi:
    """Public API handed to other extensions on activation."""

    register_middleware: Callable[..., str]
    unregister_middleware: Callable[[str], bool]
    set_diagnostics_begin: Callable[[HookHandler], HookHandler]
    set_diagnostics_end: Callable[[HookHandler], HookHandler]
    set_clean_begin: Callable[[HookHandler], HookHandler]
    set_clean_end: Callable[[HookHandler], HookHandler]


class Extension:
    """
    Multiplexes editor documents over one language server per project root.

    Usage:
        async with Extension(["/ws"]) as ext:
            await ext.did_open_text_document(TextDocument.from_path("/ws/proj/src/A.purs"))
            await ext.execute_command(doc, "purescript.build")
    """

    def __init__(
        self,
        workspace_folders: Union[WorkspaceFolders, Iterable[str]],
        config: Optional[ExtensionConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        command_provider: Optional[CommandProvider] = capability_command_provider,
    ) -> None:
        self.config = config or ExtensionConfig.from_env()
        if not isinstance(workspace_folders, WorkspaceFolders):
            workspace_folders = WorkspaceFolders.of(workspace_folders)
        self.workspace_folders = workspace_folders
        self.output = OutputChannel(self.config.output_name)
        self.relay = NotificationRelay()
        self.middleware = MiddlewarePipeline()
        self._command_provider = command_provider
        self.resolver = ProjectRootResolver(workspace_folders, self.config.marker_file)
        self.registry = SessionRegistry(
            session_factory or self._create_session,
            self.output,
            on_ready=self._on_session_ready,
        )
        self.router = CommandRouter(
            self.resolver, self.registry, self.output, self.config.static_commands
        )
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def _create_session(self, root: str) -> BaseLspServerSession:
        return PyglsClientSession(
            root,
            self.config.server,
            self.output,
            relay=self.relay,
            pipeline=self.middleware,
            hook_methods=self.config.hook_methods,
            command_provider=self._command_provider,
            settings_section=self.config.settings_section,
            settings=self.config.settings,
        )

    def _on_session_ready(self, session: BaseLspServerSession) -> None:
        added = self.router.register_session_commands(session)
        if added:
            self.output.append_line(
                f"Registered commands for {session.root}: {', '.join(sorted(added))}"
            )

    def register_middleware(
        self, interceptor: Interceptor, kinds: Optional[Iterable[MessageKind]] = None
    ) -> str:
        return self.middleware.use(interceptor, kinds)

    def unregister_middleware(self, token: str) -> bool:
        return self.middleware.remove(token)

    def activate(self) -> ExtensionApi:
        self._active = True
        logger.info(
            f"Activated for workspace folders {self.workspace_folders.folders} "
            f"(marker {self.config.marker_file})"
        )
        return ExtensionApi(
            register_middleware=self.register_middleware,
            unregister_middleware=self.unregister_middleware,
            set_diagnostics_begin=self.relay.set_diagnostics_begin,
            set_diagnostics_end=self.relay.set_diagnostics_end,
            set_clean_begin=self.relay.set_clean_begin,
            set_clean_end=self.relay.set_clean_end,
        )

    async def did_open_text_document(
        self, document: TextDocument
    ) -> Optional[BaseLspServerSession]:
        """Start (or join) the session for the document's project root."""
        if document.language_id not in self.config.languages or document.scheme != "file":
            return None

        try:
            root = await self.resolver.resolve(document)
        except Exception as exc:
            logger.exception(f"Root resolution failed for {document.uri}")
            self.output.error(f"Could not resolve project root for {document.uri}: {exc}")
            return None

        if not root:
            self.output.append_line(f"Didn't find workspace folder for {document.uri}")
            return None
        return await self.registry.ensure_session(root)

    async def open_documents(
        self, documents: Iterable[TextDocument]
    ) -> List[Optional[BaseLspServerSession]]:
        """Replay documents that were already open when the extension activated."""
        return list(
            await asyncio.gather(*(self.did_open_text_document(d) for d in documents))
        )

    async def execute_command(self, document: TextDocument, command: str, *args: Any) -> bool:
        return await self.router.dispatch(document, command, list(args))

    async def deactivate(self) -> None:
        """Stop every session and reset hooks and interceptors."""
        await self.registry.shutdown_all()
        # pending requests were failed by the session stops
        await self.router.join()
        self.relay.reset()
        self.middleware.clear()
        self._active = False
        logger.info("Deactivated")

    async def __aenter__(self) -> "Extension":
        self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.deactivate()
