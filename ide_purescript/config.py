"""Runtime configuration for ide_purescript."""

import os
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from dotenv import load_dotenv

from ide_purescript.exceptions import ConfigurationError
from ide_purescript.lsp.lsp_types import HookName
from ide_purescript.lsp.pygls_client_session import LanguageServerConfig

load_dotenv()

DEFAULT_MARKER = "spago.dhall"
DEFAULT_SERVER_COMMAND = "purescript-language-server --stdio"
DEFAULT_OUTPUT_NAME = "IDE PureScript"

STATIC_COMMANDS: Tuple[str, ...] = tuple(
    f"purescript.{name}"
    for name in (
        "caseSplit-explicit",
        "addClause-explicit",
        "addCompletionImport",
        "addModuleImport",
        "replaceSuggestion",
        "replaceAllSuggestions",
        "build",
        "clean",
        "typedHole-explicit",
        "startPscIde",
        "stopPscIde",
        "restartPscIde",
        "getAvailableModules",
        "search",
        "fixTypo",
        "sortImports",
    )
)

DEFAULT_HOOK_METHODS: Dict[HookName, str] = {
    HookName.DIAGNOSTICS_BEGIN: "purescript/diagnosticsBegin",
    HookName.DIAGNOSTICS_END: "purescript/diagnosticsEnd",
    HookName.CLEAN_BEGIN: "purescript/cleanBegin",
    HookName.CLEAN_END: "purescript/cleanEnd",
}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on", "enabled"):
        return True
    if value in ("0", "false", "no", "off", "disabled"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class ExtensionConfig:
    """Configuration for the multi-root session layer.

    Attributes:
        marker_file: File whose presence makes a directory a project root.
        server: How to launch and talk to one language server process.
        languages: Editor language ids whose documents start sessions.
        output_name: Name of the output channel.
        static_commands: Commands forwarded verbatim as workspace/executeCommand.
        hook_methods: Server notification method backing each hook.
        settings_section: Section under which ``settings`` are pushed to servers.
        settings: Client settings sent after initialization.
    """

    marker_file: str = DEFAULT_MARKER
    server: LanguageServerConfig = field(
        default_factory=lambda: LanguageServerConfig.from_command_string(
            DEFAULT_SERVER_COMMAND
        )
    )
    languages: Tuple[str, ...] = ("purescript", "javascript")
    output_name: str = DEFAULT_OUTPUT_NAME
    static_commands: Tuple[str, ...] = STATIC_COMMANDS
    hook_methods: Dict[HookName, str] = field(
        default_factory=lambda: dict(DEFAULT_HOOK_METHODS)
    )
    settings_section: str = "purescript"
    settings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.marker_file or os.sep in self.marker_file:
            raise ConfigurationError(
                f"Marker file must be a bare file name, got {self.marker_file!r}"
            )
        if not self.server.command:
            raise ConfigurationError("Language server command is not configured.")
        missing = set(HookName) - set(self.hook_methods)
        if missing:
            raise ConfigurationError(
                f"No notification method configured for hooks: {sorted(h.value for h in missing)}"
            )

    @classmethod
    def from_env(cls) -> "ExtensionConfig":
        """Build configuration from IDE_PURESCRIPT_* environment variables."""
        command = os.getenv("IDE_PURESCRIPT_SERVER_COMMAND", DEFAULT_SERVER_COMMAND)
        try:
            argv: List[str] = shlex.split(command)
        except ValueError as exc:
            raise ConfigurationError(
                f"IDE_PURESCRIPT_SERVER_COMMAND is not a valid command line: {exc}"
            ) from exc

        server = LanguageServerConfig(
            command=argv,
            timeout_seconds=_env_float("IDE_PURESCRIPT_TIMEOUT_SECONDS", 15.0),
            debug=_env_bool("IDE_PURESCRIPT_DEBUG"),
        )
        return cls(
            marker_file=os.getenv("IDE_PURESCRIPT_MARKER", DEFAULT_MARKER),
            server=server,
            output_name=os.getenv("IDE_PURESCRIPT_OUTPUT_NAME", DEFAULT_OUTPUT_NAME),
        )
