"""Rich rendering of POP3 listings and messages"""

from typing import Dict, List, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from popkit.pop3.models import MaildropStatus, ScanListing, UniqueIdListing
from popkit.utils.console import get_console


def _human_size(octets: int) -> str:
    if octets < 1024:
        return f"{octets} B"
    if octets < 1024 * 1024:
        return f"{octets / 1024:.1f} KB"
    return f"{octets / (1024 * 1024):.1f} MB"


def display_status(status: MaildropStatus, console: Optional[Console] = None) -> None:
    """Print the STAT drop listing"""
    output = console or get_console()
    output.print(
        f"[bold cyan]{status.message_count}[/] message(s), "
        f"[bold cyan]{_human_size(status.mailbox_size_bytes)}[/] "
        f"({status.mailbox_size_bytes} octets)"
    )


def display_scan_listing(
    listing: Union[Dict[int, int], ScanListing], console: Optional[Console] = None
) -> None:
    """Print LIST results as a table"""
    output = console or get_console()
    if isinstance(listing, ScanListing):
        listing = {listing.message_id: listing.size}

    table = Table(title="Maildrop")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Octets", justify="right", style="magenta")
    table.add_column("Size", justify="right", style="green")

    for message_id, size in listing.items():
        table.add_row(str(message_id), str(size), _human_size(size))

    output.print(table)


def display_unique_ids(
    listing: Union[Dict[int, str], UniqueIdListing], console: Optional[Console] = None
) -> None:
    """Print UIDL results as a table"""
    output = console or get_console()
    if isinstance(listing, UniqueIdListing):
        listing = {listing.message_id: listing.uid}

    table = Table(title="Unique IDs")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("UID", style="yellow")

    for message_id, uid in listing.items():
        table.add_row(str(message_id), uid)

    output.print(table)


def display_capabilities(
    capabilities: List[str], console: Optional[Console] = None
) -> None:
    """Print the CAPA list"""
    output = console or get_console()
    table = Table(title="Server Capabilities")
    table.add_column("Capability", style="green")
    for capability in capabilities:
        table.add_row(capability)
    output.print(table)


def display_message(
    raw_message: str, title: str = "Message", console: Optional[Console] = None
) -> None:
    """Print a raw message verbatim inside a panel"""
    output = console or get_console()
    # Text() keeps rich from interpreting markup inside the message
    output.print(Panel(Text(raw_message.rstrip("\r\n")), title=title, expand=True))
