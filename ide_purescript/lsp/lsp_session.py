"""
Core session primitives shared between the registry and client implementations.
"""

from __future__ import annotations

import asyncio
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
)

from ide_purescript.exceptions import (
    InvalidSessionTransitionError,
    SessionClosedError,
    SessionNotReadyError,
    SessionStartError,
)
from ide_purescript.lsp.lsp_types import ExecuteCommandParams, LspMethod, SessionState
from ide_purescript.output import OutputChannel
from ide_purescript.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)

CommandHandler = Callable[[List[Any]], Any]
CommandProvider = Callable[
    ["BaseLspServerSession", Any], Awaitable[Mapping[str, CommandHandler]]
]
TransitionListener = Callable[
    ["BaseLspServerSession", SessionState, SessionState], None
]
NotificationHandler = Callable[[Any], Any]

_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.STARTING: frozenset({SessionState.READY, SessionState.FAILED}),
    SessionState.READY: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class BaseLspServerSession:
    """
    One connection to one project root's language server.

    Lifecycle is an explicit state machine: STARTING -> READY -> CLOSED, or
    STARTING -> FAILED. Nothing leaves CLOSED or FAILED; a closed session is
    never restarted. Concrete implementations provide the transport through
    ``_connect``/``_disconnect`` and the send/receive primitives.
    """

    def __init__(
        self,
        root: str,
        output: OutputChannel,
        command_provider: Optional[CommandProvider] = None,
    ) -> None:
        self.root = root
        self.output = output
        self.commands: Dict[str, CommandHandler] = {}
        self.init_result: Any = None
        self._state = SessionState.STARTING
        self._command_provider = command_provider
        self._listeners: List[TransitionListener] = []
        self._settled = asyncio.Event()
        self._start_requested = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root={self.root!r}, state={self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Call ``listener(session, old, new)`` on every transition.

        Returns a function that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new_state: SessionState) -> None:
        old_state = self._state
        if new_state not in _TRANSITIONS[old_state]:
            raise InvalidSessionTransitionError(
                f"Illegal session transition {old_state.value} -> {new_state.value}",
                root=self.root,
            )
        self._state = new_state
        with log_context(root=self.root):
            logger.debug(f"Session {old_state.value} -> {new_state.value}")
        if new_state.is_terminal:
            self._settled.set()
        for listener in list(self._listeners):
            try:
                listener(self, old_state, new_state)
            except Exception:
                logger.exception(f"Transition listener failed for {self.root}")

    async def wait_settled(self) -> SessionState:
        """Wait until startup has finished one way or the other."""
        await self._settled.wait()
        return self._state

    async def start(self) -> None:
        """Connect, enter READY and announce the session's dynamic commands.

        Raises:
            SessionStartError: if the connection could not be established.
        """
        if self._start_requested:
            raise InvalidSessionTransitionError(
                "Session has already been started", root=self.root
            )
        self._start_requested = True

        try:
            init_result = await self._connect()
        except Exception as exc:
            await self._abort_start()
            if self._state is SessionState.STARTING:
                self._transition(SessionState.FAILED)
            raise SessionStartError(
                f"Failed to start language server for {self.root}: {exc}",
                root=self.root,
            ) from exc

        if self._state is not SessionState.STARTING:
            raise SessionStartError(
                f"Session for {self.root} was stopped during startup", root=self.root
            )

        self.init_result = init_result
        self._transition(SessionState.READY)
        self.commands = await self._discover_commands(init_result)
        self._settled.set()
        if self._state is not SessionState.READY:
            raise SessionStartError(
                f"Session for {self.root} closed while loading commands", root=self.root
            )

    async def _discover_commands(self, init_result: Any) -> Dict[str, CommandHandler]:
        if self._command_provider is None:
            return {}
        try:
            commands = await self._command_provider(self, init_result)
        except Exception as exc:
            logger.exception(f"Command discovery failed for {self.root}")
            self.output.error(f"Could not load commands for {self.root}: {exc}")
            return {}
        return dict(commands or {})

    def _ensure_ready(self, method: str) -> None:
        if self._state.is_terminal:
            raise SessionClosedError(
                f"Cannot send {method}: session for {self.root} is {self._state.value}",
                root=self.root,
            )
        if self._state is not SessionState.READY:
            raise SessionNotReadyError(
                f"Cannot send {method}: session for {self.root} is still starting",
                root=self.root,
            )

    async def execute_command(self, command: str, arguments: Optional[List[Any]] = None) -> Any:
        params = ExecuteCommandParams(command=command, arguments=list(arguments or []))
        return await self.send_request(LspMethod.EXECUTE_COMMAND.value, params.model_dump())

    async def _connect(self) -> Any:
        """Establish the connection and return the initialize result."""
        raise NotImplementedError

    async def _abort_start(self) -> None:
        """Release whatever a failed ``_connect`` left behind."""
        return None

    async def send_request(self, method: str, params: Any = None) -> Any:
        raise NotImplementedError

    async def send_notification(self, method: str, params: Any = None) -> None:
        raise NotImplementedError

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError
