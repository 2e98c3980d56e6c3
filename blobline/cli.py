#!/usr/bin/env python3
"""
blobline CLI

Command-line shell around the blobline server and client.

Usage:
    blobline server                  # Serve one client from ./server_files
    blobline client                  # Connect and upload/retrieve interactively
    blobline config                  # Show the effective configuration
"""

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Optional

import aiofiles
import click
from rich.console import Console
from rich.panel import Panel
from rich.logging import RichHandler
from rich.markup import escape

from .config import Config, EXAMPLE_CONFIG, load_config
from .errors import AllPortsBusy, NoServerReachable
from .events import Event, EventKind, EventSink
from .storage import BlobStore
from .transfer import FileClient, run_server
from .transfer.protocol import from_bytes

console = Console()

CLIENT_HELP = (
    "Commands:\n"
    "  upload NAME [BODY...]   upload BODY (may be empty) as NAME\n"
    "  put NAME PATH           upload the text of a local file as NAME\n"
    "  retrieve NAME           fetch NAME from the server\n"
    "  quit                    close the connection"
)

EVENT_STYLES = {
    EventKind.PORT_UNAVAILABLE: 'yellow',
    EventKind.ENDPOINT_READY: 'green',
    EventKind.ENDPOINTS_EXHAUSTED: 'bold red',
    EventKind.STORE_ERROR: 'red',
    EventKind.REQUEST_DROPPED: 'dim',
    EventKind.CONNECTION_LOST: 'bold red',
    EventKind.NOT_CONNECTED: 'yellow',
    EventKind.COMMAND_SENT: 'cyan',
    EventKind.SERVER_LINE: 'magenta',
}


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def console_sink(show_content: bool = False) -> EventSink:
    """Render presentation events on the console."""

    def post(event: Event):
        if event.kind == EventKind.SHOW_CONTENT:
            if show_content:
                console.print(Panel(escape(event.message) or "[dim](empty)[/dim]",
                                    title="File Content"))
            return
        if event.kind == EventKind.CLEAR_CONTENT:
            if show_content:
                console.print("[dim](content cleared)[/dim]")
            return

        style = EVENT_STYLES.get(event.kind)
        text = escape(str(event))
        console.print(f"[{style}]{text}[/{style}]" if style else text)

    return post


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--host', default=None, help='Host to bind/connect (default: localhost)')
@click.option('--port-low', type=int, default=None, help='First port to try')
@click.option('--port-high', type=int, default=None, help='Last port to try')
@click.pass_context
def cli(ctx, verbose, config_path, host, port_low, port_high):
    """blobline - upload and retrieve text files over a line protocol."""
    try:
        config = load_config(Path(config_path) if config_path else None)
        if host is not None:
            config.host = host
        if port_low is not None:
            config.port_low = port_low
        if port_high is not None:
            config.port_high = port_high
        config.validate()
    except ValueError as e:
        raise click.BadParameter(str(e))

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--storage-dir', type=click.Path(file_okay=False), default=None,
              help='Directory holding stored files')
@click.pass_context
def server(ctx, storage_dir):
    """Serve a single client, then exit."""
    config: Config = ctx.obj['config']
    if storage_dir:
        config.storage_dir = Path(storage_dir)

    async def run() -> int:
        store = BlobStore(config.storage_dir)
        console.print(f"[dim]Serving files from {store.root.resolve()}[/dim]")

        try:
            stats = await run_server(
                store,
                config.port_range,
                config.host,
                post=console_sink(),
                limit=config.line_limit,
            )
        except AllPortsBusy:
            return 1

        console.print(Panel.fit(
            f"[bold]Session Finished[/bold]\n\n"
            f"Peer: [cyan]{stats.peer or '-'}[/cyan]\n"
            f"Port: [yellow]{stats.port}[/yellow]\n"
            f"Requests: [yellow]{stats.requests}[/yellow] "
            f"([dim]{stats.dropped} ignored[/dim])\n"
            f"Uploads: [yellow]{stats.uploads}[/yellow]\n"
            f"Retrieves: [yellow]{stats.retrieves}[/yellow]\n"
            f"Bytes in/out: [yellow]{stats.bytes_received:,}[/yellow] / "
            f"[yellow]{stats.bytes_sent:,}[/yellow]",
            title="blobline server"
        ))
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        code = 130
    ctx.exit(code)


async def _read_local_text(path: Path) -> str:
    async with aiofiles.open(path, 'rb') as f:
        return from_bytes(await f.read())


def _settle(future: asyncio.Future, line: Optional[str], error: Optional[Exception]):
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(line)


async def read_prompt(prompt: str) -> str:
    """
    Read one operator line without blocking the event loop.

    The blocking read runs in a daemon thread so an interrupted client
    can exit while the thread is still waiting on stdin.

    Raises:
        EOFError: stdin was closed
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def read():
        try:
            line, error = console.input(prompt), None
        except Exception as e:
            line, error = None, e
        try:
            loop.call_soon_threadsafe(_settle, future, line, error)
        except RuntimeError:
            # Event loop already closed
            pass

    threading.Thread(target=read, name="blobline-prompt", daemon=True).start()
    return await future


async def _handle_input(client: FileClient, line: str) -> bool:
    """Run one operator command. Returns False when the operator quits."""
    parts = line.strip().split(maxsplit=2)
    if not parts:
        return True

    verb = parts[0].lower()
    if verb in ('quit', 'exit'):
        return False

    if verb == 'upload' and len(parts) >= 2:
        await client.upload(parts[1], parts[2] if len(parts) == 3 else '')
    elif verb == 'put' and len(parts) == 3:
        path = Path(parts[2]).expanduser()
        try:
            body = await _read_local_text(path)
        except OSError as e:
            console.print(f"[red]Cannot read {escape(str(path))}: {escape(str(e))}[/red]")
            return True
        await client.upload(parts[1], body)
    elif verb == 'retrieve' and len(parts) >= 2:
        await client.retrieve(parts[1])
    else:
        console.print(escape(CLIENT_HELP))
    return True


@cli.command()
@click.pass_context
def client(ctx):
    """Connect to a server and issue commands interactively."""
    config: Config = ctx.obj['config']

    async def run() -> int:
        file_client = FileClient(
            post=console_sink(show_content=True),
            host=config.host,
            timeout=config.connect_timeout,
            limit=config.line_limit,
        )
        console.print("Trying to connect to server...")
        try:
            await file_client.connect(config.port_range)
        except NoServerReachable:
            return 1

        console.print(f"[dim]{escape(CLIENT_HELP)}[/dim]")
        try:
            while file_client.is_connected:
                try:
                    line = await read_prompt("blobline> ")
                except EOFError:
                    break
                if not await _handle_input(file_client, line):
                    break
        finally:
            await file_client.close()
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Disconnected[/yellow]")
        code = 130
    ctx.exit(code)


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file')
@click.option('--save', 'save_path', type=click.Path(dir_okay=False), default=None,
              help='Write the effective config to a JSON file')
@click.pass_context
def show_config(ctx, example, save_path):
    """Show the effective configuration."""
    if example:
        console.print(EXAMPLE_CONFIG.strip())
        return

    config: Config = ctx.obj['config']
    if save_path:
        config.save(Path(save_path))
        console.print(f"[green]Saved to {escape(save_path)}[/green]")
        return
    console.print_json(json.dumps(config.to_dict()))


def main(argv: Optional[list] = None):
    cli(args=argv, prog_name='blobline')


if __name__ == '__main__':
    main()
