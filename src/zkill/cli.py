"""CLI entry point for zkill."""

import logging
import os
import sys
from functools import cached_property

import click
from rich.console import Console
from rich.logging import RichHandler

from zkill.commands import AutoCommand, KillCommand, ScanCommand, ScanOptions, list_port_mappings, show_info
from zkill.errors import ZkillError
from zkill.process import ProcessDirectory
from zkill.project import ProjectDetector
from zkill.storage import Storage

VERSION = "1.0.0"

console = Console()
err_console = Console(stderr=True)


class Services:
    """Lazily built collaborators shared by every subcommand."""

    def __init__(self, config_path: str | None = None) -> None:
        self.config_path = config_path

    @cached_property
    def directory(self) -> ProcessDirectory:
        """Platform process directory."""
        return ProcessDirectory()

    @cached_property
    def storage(self) -> Storage:
        """Port mapping storage."""
        return Storage(self.config_path)

    @cached_property
    def project(self) -> ProjectDetector:
        """Project detector for the working directory."""
        return ProjectDetector()


def debug_enabled() -> bool:
    """Whether tracebacks should be printed."""
    return os.environ.get("ZKILL_DEBUG") == "1" or os.environ.get("DEBUG") == "true"


def configure_logging(verbose: bool) -> None:
    """Route log records through rich on stderr."""
    level = logging.DEBUG if verbose or debug_enabled() else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


class ZkillGroup(click.Group):
    """
    Command group that treats `zkill 3000` as `zkill kill 3000`.

    Also turns ZkillError into a one-line message and exit status 1.
    """

    def resolve_command(self, ctx: click.Context, args: list[str]):
        """Treat a bare port as the kill subcommand."""
        if args and args[0] not in self.commands and not args[0].startswith("-"):
            args = ["kill", *args]
        return super().resolve_command(ctx, args)

    def invoke(self, ctx: click.Context):
        """Report ZkillError as a message and exit status 1."""
        try:
            return super().invoke(ctx)
        except ZkillError as exc:
            err_console.print(f"[red]❌ Error:[/red] {exc}", highlight=False)
            if debug_enabled():
                err_console.print_exception()
            ctx.exit(1)


@click.group(cls=ZkillGroup)
@click.version_option(VERSION, prog_name="zkill")
@click.option("--config", "-c", "config_path", default=None, help="Path to config.json")
@click.option("--verbose", "-v", is_flag=True, help="Log every native tool failure")
@click.pass_context
def cli(ctx, config_path, verbose):
    """🧟 zkill: kill zombie processes blocking your ports.

    \b
    Examples:
      zkill 3000                 Kill the process on port 3000
      zkill 3000 --force         Kill without confirmation
      zkill scan --range 3000-9000 --process node --no-system
      zkill list                 Show port-to-project mappings
      zkill auto enable          Enable auto-kill on project switch
      zkill browse               Browse listening ports interactively
    """
    configure_logging(verbose)
    if ctx.obj is None:
        ctx.obj = Services(config_path)


@cli.command()
@click.argument("port", type=int)
@click.option("--force", "-f", is_flag=True, help="Kill without confirmation")
@click.pass_obj
def kill(services, port, force):
    """Check PORT and kill the process using it."""
    KillCommand(services.directory, services.storage, services.project, console=console).execute(
        port, force
    )


@cli.command()
@click.option("--range", "-r", "port_range", default=None, help="Filter by port range (e.g. 3000-9000)")
@click.option("--process", "-p", default=None, help="Filter by process name")
@click.option("--system/--no-system", default=True, help="Show or hide system processes")
@click.pass_obj
def scan(services, port_range, process, system):
    """List all ports in use."""
    options = ScanOptions(port_range=port_range, process=process, show_system=system)
    ScanCommand(services.directory, services.storage, console=console).scan(options)


@cli.command("list")
@click.pass_obj
def list_mappings(services):
    """List all port-to-project mappings."""
    list_port_mappings(services.storage, console=console)


@cli.command()
@click.argument("action", type=click.Choice(["enable", "disable", "check", "status", "toggle"], case_sensitive=False))
@click.argument("port", type=int, required=False)
@click.pass_obj
def auto(services, action, port):
    """Manage auto-kill on project switch.

    ACTION is one of enable, disable, check, status or toggle PORT.
    """
    action = action.lower()
    command = AutoCommand(services.directory, services.storage, services.project, console=console)

    if action == "enable":
        command.enable()
    elif action == "disable":
        command.disable()
    elif action == "check":
        command.check()
    elif action == "status":
        command.status()
    else:
        if port is None:
            raise click.UsageError("auto toggle requires a PORT")
        command.toggle_port(port)


@cli.group()
def config():
    """Change stored preferences."""


@config.command("confirm")
@click.argument("state", type=click.Choice(["on", "off"], case_sensitive=False))
@click.pass_obj
def config_confirm(services, state):
    """Ask (on) or don't ask (off) before killing."""
    enabled = state.lower() == "on"
    services.storage.set_confirm_kill(enabled)
    console.print(f"[green]Kill confirmation {'enabled' if enabled else 'disabled'}[/green]")


@config.command("reset")
@click.confirmation_option(prompt="Discard all port mappings and preferences?")
@click.pass_obj
def config_reset(services):
    """Discard all mappings and preferences."""
    services.storage.clear()
    console.print(f"[green]Config reset:[/green] {services.storage.config_path}", highlight=False)


@cli.command()
@click.pass_obj
def info(services):
    """Show system and project information."""
    show_info(services.directory, services.storage, services.project, console=console)


@cli.command()
@click.pass_obj
def browse(services):
    """Browse listening ports interactively."""
    from zkill.app import PortBrowserApp

    PortBrowserApp(services.directory, services.storage).run()


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    sys.exit(main())
