"""Clients panel widget listing peers seen talking to the server."""

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static
from rich.text import Text

from roomwatch.observer import ClientDisplaySnapshot


PROTOCOL_COLORS = {
    "http": "#38bdf8",
    "udp": "#a78bfa",
}


class ClientsPanel(Vertical):
    """A compact list of clients, oldest first."""

    def compose(self) -> ComposeResult:
        yield Static("Clients", id="clients-panel-label", classes="panel-label")
        yield Static("None yet", id="clients-list")

    def update_clients(self, clients: tuple[ClientDisplaySnapshot, ...]) -> None:
        text = Text()
        if not clients:
            text.append("None yet", style="dim italic")
        for i, client in enumerate(clients):
            if i:
                text.append("\n")
            color = PROTOCOL_COLORS.get(client.protocol, "white")
            text.append(f"{client.ip_address:<15} ", style="bold")
            text.append(f"{client.protocol.upper():<4}", style=color)
            text.append(f" x{client.hits} ", style="dim")
            text.append(client.last_seen.strftime("%H:%M:%S"), style="dim")

        self.query_one("#clients-list", Static).update(text)
        self.query_one("#clients-panel-label", Static).update(f"Clients ({len(clients)})")
