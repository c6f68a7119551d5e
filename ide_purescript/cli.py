"""ide-purescript CLI entry point."""

import asyncio
import json
import sys
from pathlib import Path

import click

from ide_purescript import __version__


def _parse_argument(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@click.group()
@click.version_option(version=__version__, prog_name="ide-purescript")
def cli():
    """ide-purescript - one PureScript language server per project root.

    Resolve project roots, list editor commands and run commands against
    the language server of the root that owns a file.
    """
    pass


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--workspace",
    "-w",
    "workspaces",
    multiple=True,
    type=click.Path(exists=True, file_okay=False),
    help="Workspace folder bounding the search (repeatable, defaults to cwd)",
)
@click.option("--marker", default=None, help="Project marker file name")
def root(file: str, workspaces: tuple, marker: str | None):
    """Print the project root that owns FILE.

    Examples:

        ide-purescript root src/Main.purs

        ide-purescript root ~/ws/proj/src/Main.purs -w ~/ws
    """
    from ide_purescript.config import ExtensionConfig
    from ide_purescript.lsp.lsp_types import WorkspaceFolders
    from ide_purescript.lsp.root_resolver import find_project_root

    marker = marker or ExtensionConfig.from_env().marker_file
    folders = WorkspaceFolders.of(workspaces or [str(Path.cwd())])

    found = asyncio.run(find_project_root(file, folders, marker))
    if found is None:
        click.echo(f"No {marker} found for {file}", err=True)
        sys.exit(1)
    click.echo(found)


@cli.command()
def commands():
    """List the commands forwarded to the language server."""
    from ide_purescript.config import ExtensionConfig

    for name in ExtensionConfig.from_env().static_commands:
        click.echo(name)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("command")
@click.argument("arguments", nargs=-1)
@click.option(
    "--workspace",
    "-w",
    "workspaces",
    multiple=True,
    type=click.Path(exists=True, file_okay=False),
    help="Workspace folder (repeatable, defaults to cwd)",
)
@click.option("--language", default="purescript", help="Editor language id of FILE")
def run(file: str, command: str, arguments: tuple, workspaces: tuple, language: str):
    """Open FILE, run COMMAND on its project's language server and shut down.

    ARGUMENTS are parsed as JSON when possible, otherwise passed as strings.

    Examples:

        ide-purescript run src/Main.purs purescript.build

        ide-purescript run src/Main.purs purescript.search '"map"' -w ~/ws
    """
    from ide_purescript import Extension, TextDocument

    async def main() -> int:
        document = TextDocument.from_path(file, language_id=language)
        async with Extension(workspaces or [str(Path.cwd())]) as ext:
            session = await ext.did_open_text_document(document)
            if session is None:
                for line in ext.output.lines:
                    click.echo(line, err=True)
                return 1
            dispatched = await ext.execute_command(
                document, command, *(_parse_argument(a) for a in arguments)
            )
            await ext.router.join()
            for line in ext.output.lines:
                click.echo(line)
            return 0 if dispatched else 1

    sys.exit(asyncio.run(main()))


def main():
    cli()


if __name__ == "__main__":
    main()
