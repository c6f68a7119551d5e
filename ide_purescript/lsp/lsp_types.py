"""
Shared types and enumerations for the multi-root session layer.

These definitions model the documents an editor hands us, the workspace
folders that bound root discovery, and the small set of protocol payloads
the router builds itself. Server-specific payloads stay opaque.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """Lifecycle states of a protocol session."""

    STARTING = "starting"
    READY = "ready"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)


class HookName(str, Enum):
    """Named hooks for asynchronous build-progress notifications."""

    DIAGNOSTICS_BEGIN = "diagnostics-begin"
    DIAGNOSTICS_END = "diagnostics-end"
    CLEAN_BEGIN = "clean-begin"
    CLEAN_END = "clean-end"


class MessageKind(str, Enum):
    """Protocol message kinds an interceptor can wrap."""

    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"


class LspMethod(str, Enum):
    """Protocol methods the session layer sends on its own behalf."""

    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"
    EXIT = "exit"
    EXECUTE_COMMAND = "workspace/executeCommand"
    DID_CHANGE_CONFIGURATION = "workspace/didChangeConfiguration"
    LOG_MESSAGE = "window/logMessage"
    SHOW_MESSAGE = "window/showMessage"


class TextDocument(BaseModel):
    """An open editor document."""

    uri: str = Field(..., description="Document URI, e.g. file:///ws/proj/src/A.purs.")
    language_id: str = Field(
        "purescript", description="Editor language identifier of the document."
    )

    @classmethod
    def from_path(cls, path: str, language_id: str = "purescript") -> "TextDocument":
        return cls(uri=Path(os.path.abspath(path)).as_uri(), language_id=language_id)

    @property
    def scheme(self) -> str:
        return urlparse(self.uri).scheme

    @property
    def fs_path(self) -> Optional[str]:
        """Filesystem path for file: documents, None for untitled and friends."""
        if self.scheme != "file":
            return None
        return os.path.normpath(unquote(urlparse(self.uri).path))


class WorkspaceFolders(BaseModel):
    """The editor-visible workspace folders that bound root discovery."""

    folders: List[str] = Field(default_factory=list)

    @classmethod
    def of(cls, paths: Iterable[str]) -> "WorkspaceFolders":
        return cls(folders=[os.path.normpath(os.path.abspath(p)) for p in paths])

    def get_workspace_folder(self, path: str) -> Optional[str]:
        """Return the deepest folder containing ``path``, if any."""
        target = os.path.normpath(os.path.abspath(path))
        best: Optional[str] = None
        for folder in self.folders:
            if target == folder or target.startswith(folder.rstrip(os.sep) + os.sep):
                if best is None or len(folder) > len(best):
                    best = folder
        return best


class ExecuteCommandParams(BaseModel):
    """Payload of a workspace/executeCommand request."""

    command: str
    arguments: List[Any] = Field(default_factory=list)
