"""
Unit tests for CommandRouter dispatch.

Static commands must become exactly one workspace/executeCommand request;
dynamic commands must call the session's handler without touching the
protocol; lookup misses are logged no-ops.
"""

import asyncio

import pytest
from unittest.mock import MagicMock

from ide_purescript.config import STATIC_COMMANDS
from ide_purescript.lsp.command_router import CommandRouter
from ide_purescript.lsp.lsp_types import TextDocument, WorkspaceFolders
from ide_purescript.lsp.root_resolver import ProjectRootResolver
from ide_purescript.lsp.session_registry import SessionRegistry


@pytest.fixture
def registry(fake_factory, output):
    return SessionRegistry(fake_factory, output)


@pytest.fixture
def router(workspace, registry, output):
    resolver = ProjectRootResolver(WorkspaceFolders.of([str(workspace)]), "spago.dhall")
    return CommandRouter(resolver, registry, output, STATIC_COMMANDS)


@pytest.fixture
def document(workspace):
    return TextDocument.from_path(str(workspace / "proj" / "src" / "A.purs"))


class TestStaticCommands:
    @pytest.mark.asyncio
    async def test_build_sends_one_execute_command_request(
        self, router, registry, document, workspace
    ):
        session = await registry.ensure_session(str(workspace / "proj"))

        dispatched = await router.dispatch(document, "purescript.build", ["arg1", 2])
        await router.join()

        assert dispatched is True
        assert session.requests == [
            (
                "workspace/executeCommand",
                {"command": "purescript.build", "arguments": ["arg1", 2]},
            )
        ]

    @pytest.mark.asyncio
    async def test_static_name_wins_over_announced_handler(
        self, router, registry, fake_factory, document, workspace
    ):
        handler = MagicMock()
        fake_factory.options["commands"] = {"purescript.build": handler}
        session = await registry.ensure_session(str(workspace / "proj"))

        await router.dispatch(document, "purescript.build", [])
        await router.join()

        handler.assert_not_called()
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_request_goes_to_owning_root_only(self, router, registry, fake_factory, workspace):
        proj = await registry.ensure_session(str(workspace / "proj"))
        other = await registry.ensure_session(str(workspace / "other"))
        doc = TextDocument.from_path(str(workspace / "other" / "src" / "B.purs"))

        await router.dispatch(doc, "purescript.clean", [])
        await router.join()

        assert proj.requests == []
        assert other.requests == [
            ("workspace/executeCommand", {"command": "purescript.clean", "arguments": []})
        ]

    @pytest.mark.asyncio
    async def test_failed_request_is_logged_not_raised(
        self, router, registry, document, workspace, output
    ):
        session = await registry.ensure_session(str(workspace / "proj"))

        async def failing_request(method, params=None):
            raise RuntimeError("server said no")

        session.send_request = failing_request

        assert await router.dispatch(document, "purescript.build", []) is True
        await router.join()

        assert any("server said no" in line for line in output.lines)


class TestDynamicCommands:
    @pytest.mark.asyncio
    async def test_handler_invoked_directly(self, router, registry, fake_factory, document, workspace):
        handler = MagicMock(return_value=None)
        fake_factory.options["commands"] = {"purescript.addTypeAnnotation": handler}
        session = await registry.ensure_session(str(workspace / "proj"))
        router.register_session_commands(session)

        dispatched = await router.dispatch(document, "purescript.addTypeAnnotation", [1, 2])

        assert dispatched is True
        handler.assert_called_once_with([1, 2])
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_async_handler_is_awaited(self, router, registry, fake_factory, document, workspace):
        calls = []

        async def handler(args):
            calls.append(args)

        fake_factory.options["commands"] = {"purescript.expandSelection": handler}
        await registry.ensure_session(str(workspace / "proj"))

        await router.dispatch(document, "purescript.expandSelection", ["x"])
        await router.join()

        assert calls == [["x"]]

    @pytest.mark.asyncio
    async def test_uses_the_documents_own_session_table(
        self, router, registry, fake_factory, workspace
    ):
        proj_handler = MagicMock()
        other_handler = MagicMock()
        fake_factory.per_root[str(workspace / "proj")] = {"commands": {"ps.refactor": proj_handler}}
        fake_factory.per_root[str(workspace / "other")] = {"commands": {"ps.refactor": other_handler}}
        for root in ("proj", "other"):
            router.register_session_commands(
                await registry.ensure_session(str(workspace / root))
            )
        doc = TextDocument.from_path(str(workspace / "proj" / "src" / "A.purs"))

        await router.dispatch(doc, "ps.refactor", [])

        proj_handler.assert_called_once_with([])
        other_handler.assert_not_called()
        # last announcement owns the global name
        assert router.command_owner("ps.refactor") == str(workspace / "other")

    @pytest.mark.asyncio
    async def test_handler_exception_is_contained(
        self, router, registry, fake_factory, document, workspace, output
    ):
        fake_factory.options["commands"] = {"ps.boom": MagicMock(side_effect=ValueError("boom"))}
        await registry.ensure_session(str(workspace / "proj"))

        assert await router.dispatch(document, "ps.boom", []) is False
        assert any("boom" in line for line in output.lines)


class TestLookupMisses:
    @pytest.mark.asyncio
    async def test_no_session_is_noop_and_creates_nothing(
        self, router, registry, fake_factory, document, output
    ):
        dispatched = await router.dispatch(document, "purescript.build", [])

        assert dispatched is False
        assert fake_factory.created == []
        assert len(registry) == 0
        assert output.lines[-1].startswith("Didn't find language client for")

    @pytest.mark.asyncio
    async def test_no_root_is_noop(self, router, workspace, output):
        doc = TextDocument.from_path(str(workspace / "loose" / "A.purs"))

        assert await router.dispatch(doc, "purescript.build", []) is False
        assert output.lines[-1].startswith("Didn't find project root for")

    @pytest.mark.asyncio
    async def test_untitled_document_is_noop(self, router):
        doc = TextDocument(uri="untitled:Untitled-1")

        assert await router.dispatch(doc, "purescript.build", []) is False

    @pytest.mark.asyncio
    async def test_unknown_command_is_noop(self, router, registry, document, workspace, output):
        session = await registry.ensure_session(str(workspace / "proj"))

        assert await router.dispatch(document, "purescript.nope", []) is False
        assert session.requests == []
        assert "Unknown command purescript.nope" in output.lines[-1]

    @pytest.mark.asyncio
    async def test_session_not_ready_is_noop(
        self, router, registry, fake_factory, document, workspace
    ):
        fake_factory.options["start_delay"] = 0.5

        task = asyncio.create_task(registry.ensure_session(str(workspace / "proj")))
        await asyncio.sleep(0)

        assert await router.dispatch(document, "purescript.build", []) is False
        session = await task
        assert session.requests == []


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_skips_static_names(self, router, registry, fake_factory, workspace):
        fake_factory.options["commands"] = {
            "purescript.build": MagicMock(),
            "purescript.newThing": MagicMock(),
        }
        session = await registry.ensure_session(str(workspace / "proj"))

        added = router.register_session_commands(session)

        assert added == ["purescript.newThing"]
        assert router.command_owner("purescript.build") is None
        assert "purescript.newThing" in router.registered_commands()
        assert set(STATIC_COMMANDS) <= set(router.registered_commands())

    @pytest.mark.asyncio
    async def test_reannouncing_does_not_add_again(self, router, registry, fake_factory, workspace):
        fake_factory.options["commands"] = {"ps.x": MagicMock()}
        first = await registry.ensure_session(str(workspace / "proj"))
        second = await registry.ensure_session(str(workspace / "other"))

        assert router.register_session_commands(first) == ["ps.x"]
        assert router.register_session_commands(second) == []
