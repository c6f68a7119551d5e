"""
Minimal conftest for unit tests.

Unit tests exercise the session layer against in-memory fake sessions; no
language server binary is spawned.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path for imports (idempotent)
project_root = Path(__file__).parent.parent.parent.resolve()
project_root_str = str(project_root)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from ide_purescript.config import ExtensionConfig  # noqa: E402
from ide_purescript.lsp.lsp_session import BaseLspServerSession, CommandHandler  # noqa: E402
from ide_purescript.lsp.lsp_types import SessionState  # noqa: E402
from ide_purescript.lsp.pygls_client_session import LanguageServerConfig  # noqa: E402
from ide_purescript.output import OutputChannel  # noqa: E402


class FakeSession(BaseLspServerSession):
    """In-memory session recording everything sent through it."""

    def __init__(
        self,
        root: str,
        output: OutputChannel,
        commands: Optional[Dict[str, CommandHandler]] = None,
        fail_start: bool = False,
        fail_stop: bool = False,
        start_delay: float = 0.0,
    ) -> None:
        provider = None
        if commands is not None:

            async def provider(session, init_result):
                return commands

        super().__init__(root, output, provider)
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.start_delay = start_delay
        self.requests: List[tuple] = []
        self.notifications: List[tuple] = []
        self.notification_handlers: Dict[str, Any] = {}
        self.stop_calls = 0

    async def _connect(self) -> Any:
        await asyncio.sleep(self.start_delay)
        if self.fail_start:
            raise RuntimeError("spawn failed")
        return {"capabilities": {}}

    async def send_request(self, method: str, params: Any = None) -> Any:
        self._ensure_ready(method)
        self.requests.append((method, params))
        return None

    async def send_notification(self, method: str, params: Any = None) -> None:
        self._ensure_ready(method)
        self.notifications.append((method, params))

    def on_notification(self, method: str, handler) -> None:
        self.notification_handlers[method] = handler

    async def stop(self) -> None:
        self.stop_calls += 1
        if self.fail_stop:
            raise RuntimeError("stop failed")
        if self.state is SessionState.READY:
            self._transition(SessionState.CLOSED)
        elif self.state is SessionState.STARTING:
            self._transition(SessionState.FAILED)

    def simulate_close(self) -> None:
        self._transition(SessionState.CLOSED)


class FakeSessionFactory:
    """Session factory that records every session it creates.

    ``options`` are passed to FakeSession; ``per_root`` overrides them per root.
    """

    def __init__(self, output: OutputChannel, **options: Any) -> None:
        self.output = output
        self.options = options
        self.per_root: Dict[str, Dict[str, Any]] = {}
        self.created: List[FakeSession] = []

    def __call__(self, root: str) -> FakeSession:
        options = {**self.options, **self.per_root.get(root, {})}
        session = FakeSession(root, self.output, **options)
        self.created.append(session)
        return session

    def roots(self) -> List[str]:
        return [s.root for s in self.created]


@pytest.fixture
def output():
    return OutputChannel("IDE PureScript (test)")


@pytest.fixture
def fake_factory(output):
    return FakeSessionFactory(output)


@pytest.fixture
def config():
    return ExtensionConfig(server=LanguageServerConfig(command=["purescript-language-server", "--stdio"]))


@pytest.fixture
def workspace(tmp_path):
    """
    Workspace folder with two spago projects and one loose directory:

        ws/proj/spago.dhall, ws/proj/src/A.purs
        ws/other/spago.dhall, ws/other/src/B.purs
        ws/loose/A.purs
    """
    ws = tmp_path / "ws"
    for project, module in (("proj", "A"), ("other", "B")):
        src = ws / project / "src"
        src.mkdir(parents=True)
        (ws / project / "spago.dhall").write_text("{ name = \"%s\" }\n" % project)
        (src / f"{module}.purs").write_text(f"module {module} where\n")
    loose = ws / "loose"
    loose.mkdir(parents=True)
    (loose / "A.purs").write_text("module A where\n")
    return ws


@pytest.fixture
def make_session(output):
    def make(root: str = "/ws/proj", **options: Any) -> FakeSession:
        return FakeSession(root, output, **options)

    return make
