"""
Notifier that prints messages to the terminal instead of sending email.
"""

from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel

from ..domain.models import Booking

console = Console()


class ConsoleNotifier:
    """
    Prints confirmation links and owner notifications via ``rich``.

    ``confirm_url_template`` receives ``page_ref`` and ``token``.
    """

    def __init__(
        self,
        confirm_url_template: str = "slotbook confirm {token} --page {page_ref}",
        output: Optional[Console] = None,
    ):
        self.confirm_url_template = confirm_url_template
        self.console = output or console

    def send_confirmation_link(self, contact: str, token: str, metadata: Dict[str, Any]) -> None:
        link = self.confirm_url_template.format(
            token=token, page_ref=metadata.get("page_ref", "")
        )
        self.console.print(Panel.fit(
            f"[bold]To:[/bold] {contact}\n"
            f"[bold]Slot:[/bold] {metadata.get('start')} - {metadata.get('end')}\n\n"
            f"Confirm your request within the hour:\n[cyan]{link}[/cyan]",
            title="Confirmation link"
        ))

    def notify_owner(self, booking: Booking, metadata: Dict[str, Any]) -> None:
        owner = metadata.get("owner_email") or metadata.get("owner_name") or "owner"
        notes = f"\n[bold]Notes:[/bold] {booking.requester.notes}" if booking.requester.notes else ""
        self.console.print(Panel.fit(
            f"[bold]To:[/bold] {owner}\n"
            f"[bold]From:[/bold] {booking.requester.name} <{booking.requester.email}>\n"
            f"[bold]When:[/bold] {booking.start.to_iso8601_string()} - {booking.end.to_iso8601_string()}\n"
            f"[bold]Reason:[/bold] {booking.requester.reason}{notes}",
            title="New appointment request"
        ))
