"""
pygls-backed protocol session implementation.

This module provides a concrete `BaseLspServerSession` that uses pygls'
`JsonRPCClient` to spawn one language server per project root and talk to
it over stdio.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set

from pygls.client import JsonRPCClient

from ide_purescript.exceptions import SessionClosedError, SessionStartError
from ide_purescript.lsp.lsp_session import (
    BaseLspServerSession,
    CommandHandler,
    CommandProvider,
    NotificationHandler,
)
from ide_purescript.lsp.lsp_types import HookName, LspMethod, MessageKind, SessionState
from ide_purescript.lsp.middleware import MiddlewarePipeline, ProtocolMessage
from ide_purescript.lsp.notifications import NotificationRelay
from ide_purescript.output import OutputChannel
from ide_purescript.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)

CLIENT_NAME = "ide-purescript"
CLIENT_VERSION = "0.1.0"


@dataclass
class LanguageServerConfig:
    """Process-level configuration for launching a language server."""

    command: Sequence[str]
    initialization_options: Dict[str, Any] = field(
        default_factory=lambda: {"executeCommandProvider": False}
    )
    environment: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float = 15.0
    debug: bool = False
    debug_args: Sequence[str] = ("--nolazy", "--inspect=6009")

    @classmethod
    def from_command_string(cls, command: str, **kwargs: Any) -> "LanguageServerConfig":
        return cls(command=shlex.split(command), **kwargs)

    @property
    def argv(self) -> List[str]:
        """Command line to spawn; debug arguments follow the executable."""
        argv = list(self.command)
        if self.debug and argv:
            return argv[:1] + list(self.debug_args) + argv[1:]
        return argv


class SessionClient(JsonRPCClient):
    """JsonRPCClient that reports server exit and protocol errors to its session."""

    def __init__(
        self,
        on_exit: Callable[[Any], None],
        on_error: Callable[[Exception], None],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._on_exit = on_exit
        self._on_error = on_error

    async def server_exit(self, server):
        self._on_exit(server)

    def report_server_error(self, error, source):
        self._on_error(error)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a dict payload or a converted attrs/namedtuple payload."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


async def capability_command_provider(
    session: BaseLspServerSession, init_result: Any
) -> Dict[str, CommandHandler]:
    """Expose the server's advertised executeCommandProvider commands.

    Each handler executes the command on the announcing session.
    """
    capabilities = _field(init_result, "capabilities")
    provider = _field(capabilities, "executeCommandProvider")
    if provider is None:
        provider = _field(capabilities, "execute_command_provider")
    names = _field(provider, "commands") or []

    def make_handler(name: str) -> CommandHandler:
        def handler(arguments: List[Any]) -> Any:
            return session.execute_command(name, arguments)

        return handler

    return {name: make_handler(name) for name in names}


class PyglsClientSession(BaseLspServerSession):
    """Concrete protocol session powered by pygls' JsonRPCClient."""

    def __init__(
        self,
        root: str,
        config: LanguageServerConfig,
        output: OutputChannel,
        relay: Optional[NotificationRelay] = None,
        pipeline: Optional[MiddlewarePipeline] = None,
        hook_methods: Optional[Mapping[HookName, str]] = None,
        command_provider: Optional[CommandProvider] = capability_command_provider,
        settings_section: Optional[str] = None,
        settings: Optional[Mapping[str, Any]] = None,
        client_factory: Optional[Callable[..., JsonRPCClient]] = None,
    ) -> None:
        super().__init__(root, output, command_provider)
        self.config = config
        self._relay = relay
        self._pipeline = pipeline if pipeline is not None else MiddlewarePipeline()
        self._settings_section = settings_section
        self._settings = dict(settings or {})
        if client_factory is None:
            client_factory = SessionClient
        self._client = client_factory(
            on_exit=self._handle_server_exit,
            on_error=self._handle_protocol_error,
        )
        self._pending: Set[asyncio.Future] = set()
        self._stopping = False
        self._register_handlers(hook_methods or {})

    # ------------------------------------------------------------------
    # Incoming traffic
    # ------------------------------------------------------------------

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._client.feature(method)(handler)

    def _register_handlers(self, hook_methods: Mapping[HookName, str]) -> None:
        if self._relay is not None:
            for hook, method in hook_methods.items():
                self.on_notification(method, self._relay_handler(HookName(hook)))

        def on_log_message(params: Any) -> None:
            self.output.append_line(str(_field(params, "message", "")))

        self.on_notification(LspMethod.LOG_MESSAGE.value, on_log_message)
        self.on_notification(LspMethod.SHOW_MESSAGE.value, on_log_message)

    def _relay_handler(self, hook: HookName) -> NotificationHandler:
        relay = self._relay

        def handler(params: Any) -> None:
            relay.emit(hook, params)

        return handler

    def _handle_protocol_error(self, error: Exception) -> None:
        # recoverable: the session keeps running
        with log_context(root=self.root):
            logger.error(f"Language server protocol error: {error!r}")
        self.output.error(f"Language server error for {self.root}: {error}")

    def _handle_server_exit(self, server: Any) -> None:
        if self._state.is_terminal:
            return
        code = getattr(server, "returncode", None)
        if not self._stopping:
            self.output.warn(
                f"Language server for {self.root} exited (code {code}); it will not be restarted"
            )
        self._fail_pending()
        self._transition(
            SessionState.CLOSED if self.is_ready else SessionState.FAILED
        )

    def _fail_pending(self) -> None:
        for future in list(self._pending):
            if not future.done():
                future.set_exception(
                    SessionClosedError(
                        f"Connection to language server for {self.root} closed",
                        root=self.root,
                    )
                )
        self._pending.clear()

    async def _await_response(self, future: asyncio.Future) -> Any:
        self._pending.add(future)
        try:
            return await asyncio.wait_for(future, timeout=self.config.timeout_seconds)
        finally:
            self._pending.discard(future)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _connect(self) -> Any:
        argv = self.config.argv
        if not argv:
            raise SessionStartError("Language server command is not configured.", root=self.root)

        executable = argv[0]
        if shutil.which(executable) is None:
            raise SessionStartError(
                f"Language server executable '{executable}' is not available in PATH.",
                root=self.root,
            )

        env = os.environ.copy()
        env.update(self.config.environment)

        self.output.append_line(f"Launching new language client for {self.root}")
        await self._client.start_io(argv[0], *argv[1:], cwd=self.root, env=env)

        root_uri = Path(self.root).as_uri()
        init_params = {
            "processId": os.getpid(),
            "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
            "rootUri": root_uri,
            "rootPath": self.root,
            "workspaceFolders": [
                {"uri": root_uri, "name": os.path.basename(self.root)}
            ],
            "capabilities": {
                "workspace": {
                    "configuration": True,
                    "didChangeConfiguration": {"dynamicRegistration": False},
                    "executeCommand": {"dynamicRegistration": False},
                },
                "window": {"workDoneProgress": False},
            },
            "initializationOptions": dict(self.config.initialization_options),
        }

        try:
            init_result = await self._await_response(
                self._client.protocol.send_request_async(
                    LspMethod.INITIALIZE.value, init_params
                )
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Initialize request timed out after {self.config.timeout_seconds}s. "
                f"Command: {' '.join(argv)}. Root: {self.root}."
            )
            raise

        self._client.protocol.notify(LspMethod.INITIALIZED.value, {})
        if self._settings_section:
            self._client.protocol.notify(
                LspMethod.DID_CHANGE_CONFIGURATION.value,
                {"settings": {self._settings_section: self._settings}},
            )
        self.output.append_line(f"Activated language client for {self.root}")
        return init_result

    async def _abort_start(self) -> None:
        self._fail_pending()
        try:
            await self._client.stop()
        except Exception:
            logger.debug(f"Client stop after failed start raised for {self.root}")

    async def stop(self) -> None:
        """Gracefully stop the server; the session ends CLOSED (or FAILED if still starting)."""
        if self._state.is_terminal:
            return
        self._stopping = True

        if not self.is_ready:
            self._fail_pending()
            try:
                await self._client.stop()
            finally:
                if self._state is SessionState.STARTING:
                    self._transition(SessionState.FAILED)
            return

        try:
            await self._await_response(
                self._client.protocol.send_request_async(LspMethod.SHUTDOWN.value, None)
            )
        except Exception as exc:
            logger.warning(f"Shutdown request failed for {self.root}: {exc!r}")

        try:
            self._client.protocol.notify(LspMethod.EXIT.value, None)
            await self._client.stop()
        finally:
            self._fail_pending()
            if self._state is SessionState.READY:
                self._transition(SessionState.CLOSED)

    # ------------------------------------------------------------------
    # Outgoing traffic
    # ------------------------------------------------------------------

    async def send_request(self, method: str, params: Any = None) -> Any:
        self._ensure_ready(method)
        request = ProtocolMessage(MessageKind.REQUEST, method, params, self.root)
        result = await self._pipeline.run(request, self._send_request_on_wire)
        response = ProtocolMessage(MessageKind.RESPONSE, method, result, self.root)
        return await self._pipeline.run(response, _response_payload)

    async def _send_request_on_wire(self, message: ProtocolMessage) -> Any:
        self._ensure_ready(message.method)
        return await self._await_response(
            self._client.protocol.send_request_async(message.method, message.payload)
        )

    async def send_notification(self, method: str, params: Any = None) -> None:
        self._ensure_ready(method)
        notification = ProtocolMessage(MessageKind.NOTIFICATION, method, params, self.root)
        await self._pipeline.run(notification, self._send_notification_on_wire)

    async def _send_notification_on_wire(self, message: ProtocolMessage) -> None:
        self._ensure_ready(message.method)
        self._client.protocol.notify(message.method, message.payload)


async def _response_payload(message: ProtocolMessage) -> Any:
    return message.payload
