"""Command line interface for inspecting a POP3 maildrop"""

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from popkit.pop3 import AuthMechanism, CapabilityFormat, Pop3Session, SecurityMode
from popkit.security.credentials import resolve_password, store_keyring_password
from popkit.ui import maildrop_viewer
from popkit.utils.config import ConfigManager, Pop3Config
from popkit.utils.console import get_console
from popkit.utils.errors import (
    ConfigError,
    ErrorHandler,
    PopKitError,
    format_error_message,
)
from popkit.utils.logging import init_logging


## Argument Parsing


def add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    """Add server and account overrides to the parser."""

    group = parser.add_argument_group("connection", "Override configured settings")
    group.add_argument("--host", help="POP3 server hostname")
    group.add_argument("--port", type=int, help="POP3 server port")
    group.add_argument(
        "--security",
        choices=[mode.value for mode in SecurityMode],
        help="Connection security (plain, implicit_tls, starttls)",
    )
    group.add_argument("--user", help="Mailbox user name")
    group.add_argument(
        "--mechanism",
        choices=[mechanism.value for mechanism in AuthMechanism],
        help="Authentication mechanism",
    )
    group.add_argument("--timeout", type=float, help="Network timeout in seconds")
    group.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (test servers only)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the popkit argument parser."""

    parser = argparse.ArgumentParser(
        prog="popkit",
        description="Inspect and retrieve mail from a POP3 maildrop.",
    )
    parser.add_argument("--config", type=Path, help="Path to config.json")
    parser.add_argument("--log-level", help="File log level (default from config)")
    add_connection_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("capa", help="Show server capabilities")
    subparsers.add_parser("stat", help="Show message count and maildrop size")

    list_parser = subparsers.add_parser("list", help="List message sizes")
    list_parser.add_argument("id", type=int, nargs="?", help="Message number")

    uidl_parser = subparsers.add_parser("uidl", help="List unique message ids")
    uidl_parser.add_argument("id", type=int, nargs="?", help="Message number")

    retr_parser = subparsers.add_parser("retr", help="Print a whole message")
    retr_parser.add_argument("id", type=int, help="Message number")

    top_parser = subparsers.add_parser("top", help="Print headers and first body lines")
    top_parser.add_argument("id", type=int, help="Message number")
    top_parser.add_argument("lines", type=int, help="Number of body lines")

    dele_parser = subparsers.add_parser("dele", help="Delete a message")
    dele_parser.add_argument("id", type=int, help="Message number")

    subparsers.add_parser(
        "store-password", help="Save the account password in the system keyring"
    )

    return parser


def apply_overrides(config: Pop3Config, args: argparse.Namespace) -> Pop3Config:
    """Merge command line overrides into the configured account."""

    overrides = {
        "host": args.host,
        "port": args.port,
        "security_mode": args.security,
        "username": args.user,
        "auth_mechanism": args.mechanism,
        "timeout": args.timeout,
    }
    if args.insecure:
        overrides["verify_certificates"] = False

    data = config.model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Pop3Config(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid connection settings: {str(e)}") from e


## Command Execution


async def run_command(
    args: argparse.Namespace, config: Pop3Config, console: Console
) -> int:
    """Run one CLI command against the server."""

    if args.command == "store-password":
        if not config.username:
            raise ConfigError("A user name is required (--user or account.username)")
        password = await asyncio.to_thread(
            Prompt.ask, f"Password for [bold]{config.username}[/]", password=True
        )
        await store_keyring_password(config.username, password)
        console.print("[green]Password saved to the system keyring.[/]")
        return 0

    async with Pop3Session(config) as session:
        if session.greeting:
            console.print(f"[dim]{escape(session.greeting)}[/]")

        if args.command == "capa":
            capabilities = await session.get_server_capabilities(CapabilityFormat.LIST)
            maildrop_viewer.display_capabilities(capabilities, console)
            return 0

        if not config.username:
            raise ConfigError("A user name is required (--user or account.username)")

        password = await resolve_password(config.username)
        if not password:
            raise ConfigError(f"No password available for {config.username}")

        await session.authenticate(config.username, password, config.auth_mechanism)

        if args.command == "stat":
            maildrop_viewer.display_status(await session.status(), console)

        elif args.command == "list":
            maildrop_viewer.display_scan_listing(
                await session.list_messages(args.id), console
            )

        elif args.command == "uidl":
            maildrop_viewer.display_unique_ids(await session.uidl(args.id), console)

        elif args.command == "retr":
            message = await session.retrieve(args.id)
            maildrop_viewer.display_message(message, f"Message {args.id}", console)

        elif args.command == "top":
            message = await session.top(args.id, args.lines)
            maildrop_viewer.display_message(
                message, f"Message {args.id} (top {args.lines})", console
            )

        elif args.command == "dele":
            await session.delete(args.id)
            console.print(f"[green]Message {args.id} marked for deletion.[/]")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``popkit`` command."""

    parser = build_parser()
    args = parser.parse_args(argv)
    console = get_console()

    try:
        manager = ConfigManager(args.config)
        log_config = manager.config.logging
        init_logging(
            args.log_level or log_config.log_level,
            console_level=log_config.console_level,
            log_to_file=log_config.log_to_file,
            max_file_size=log_config.max_file_size,
            backup_count=log_config.backup_count,
        )
        config = apply_overrides(manager.config.account, args)
        return asyncio.run(run_command(args, config, console))

    except PopKitError as e:
        ErrorHandler.handle(e, f"popkit {args.command}", log_traceback=False)
        console.print(f"[red]{escape(format_error_message(e))}[/]")
        return 1

    except ValueError as e:
        # Raised by init_logging for an unknown level name
        console.print(f"[red]{escape(str(e))}[/]")
        return 1

    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/]")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
