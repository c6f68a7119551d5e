"""
ide_purescript - multi-root language server session layer for PureScript projects.

Every directory holding a ``spago.dhall`` is a project root with its own
language server process. Documents are routed to the server of the root that
owns them; editor commands and server notifications follow the same routing.

Example:
    >>> from ide_purescript import Extension, TextDocument
    >>>
    >>> async with Extension(["/ws"]) as ext:
    ...     doc = TextDocument.from_path("/ws/proj/src/Main.purs")
    ...     await ext.did_open_text_document(doc)
    ...     await ext.execute_command(doc, "purescript.build")
"""

from ide_purescript.config import ExtensionConfig, STATIC_COMMANDS
from ide_purescript.exceptions import (
    IdePurescriptError,
    ConfigurationError,
    SessionError,
    SessionStartError,
    SessionNotReadyError,
    SessionClosedError,
    InvalidSessionTransitionError,
)
from ide_purescript.extension import Extension, ExtensionApi
from ide_purescript.lsp.lsp_types import (
    HookName,
    MessageKind,
    SessionState,
    TextDocument,
    WorkspaceFolders,
)
from ide_purescript.lsp.middleware import ProtocolMessage
from ide_purescript.lsp.pygls_client_session import LanguageServerConfig

__version__ = "0.1.0"

__all__ = [
    "Extension",
    "ExtensionApi",
    "ExtensionConfig",
    "LanguageServerConfig",
    "STATIC_COMMANDS",
    "TextDocument",
    "WorkspaceFolders",
    "HookName",
    "MessageKind",
    "SessionState",
    "ProtocolMessage",
    "IdePurescriptError",
    "ConfigurationError",
    "SessionError",
    "SessionStartError",
    "SessionNotReadyError",
    "SessionClosedError",
    "InvalidSessionTransitionError",
]
