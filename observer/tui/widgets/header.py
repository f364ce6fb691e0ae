"""Server header widget showing host identity, uptime, link status and host load."""

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Static
from textual.reactive import reactive

from roomwatch.observer import DashboardSnapshot


LINK_ICONS = {
    "starting": "○",
    "attached": "◐",
    "running": "●",
    "disconnected": "✕",
    "reconnecting": "↻",
    "terminated": "■",
}


class ServerHeader(Vertical):
    """
    Header showing server info, link status, and a banner when the link is down.

    Layout: RoomWatch | host (ip) | Up 00:12:34 | Port 8000 | CPU/RAM | [status]
            [ banner: Disconnected ... ]
    """

    hostname: reactive[str] = reactive("Unknown")
    ip_address: reactive[str] = reactive("Unknown")
    uptime: reactive[str] = reactive("--:--:--")
    port: reactive[str] = reactive("")
    host_load: reactive[str] = reactive("")
    link_state: reactive[str] = reactive("starting")
    banner: reactive[str] = reactive("")

    def compose(self) -> ComposeResult:
        with Horizontal(id="header-row"):
            yield Static("RoomWatch", classes="title", id="title")
            yield Static("Unknown", classes="host-display", id="host-display")
            yield Static("Up --:--:--", classes="uptime-display", id="uptime-display")
            yield Static("", classes="port-display", id="port-display")
            yield Static("", classes="load-display", id="load-display")
            yield Static("○ STARTING", classes="status-indicator", id="status-display")
        yield Static("", id="link-banner")

    def on_mount(self) -> None:
        self._update_displays()

    def _update_displays(self) -> None:
        self.query_one("#host-display", Static).update(f"{self.hostname} ({self.ip_address})")
        self.query_one("#uptime-display", Static).update(f"Up {self.uptime}")
        self.query_one("#port-display", Static).update(self.port)
        self.query_one("#load-display", Static).update(self.host_load)

        icon = LINK_ICONS.get(self.link_state, "?")
        status_widget = self.query_one("#status-display", Static)
        status_widget.update(f"{icon} {self.link_state.upper()}")
        status_widget.remove_class(*(f"status-{name}" for name in LINK_ICONS))
        status_widget.add_class(f"status-{self.link_state}")

        banner_widget = self.query_one("#link-banner", Static)
        banner_widget.update(self.banner)
        banner_widget.display = bool(self.banner)

    def watch_hostname(self, value: str) -> None:
        self._update_displays()

    def watch_ip_address(self, value: str) -> None:
        self._update_displays()

    def watch_uptime(self, value: str) -> None:
        self._update_displays()

    def watch_port(self, value: str) -> None:
        self._update_displays()

    def watch_host_load(self, value: str) -> None:
        self._update_displays()

    def watch_link_state(self, value: str) -> None:
        self._update_displays()

    def watch_banner(self, value: str) -> None:
        self._update_displays()

    def update_from_snapshot(self, snapshot: DashboardSnapshot) -> None:
        """Update header state from one dashboard snapshot."""
        server = snapshot.server
        if server is not None:
            self.hostname = server.hostname
            self.ip_address = server.ip_address
            self.uptime = server.uptime_display
            if server.listening_port is not None:
                ready = "ready" if server.ready else "starting"
                self.port = f"Port {server.listening_port} ({ready})"
            else:
                self.port = ""

        host = snapshot.host
        if host is not None:
            self.host_load = (
                f"CPU {host.cpu_percent:.0f}% | "
                f"RAM {host.ram_used_mb}/{host.ram_total_mb} MB | "
                f"OS up {host.os_uptime_display}"
            )

        self.link_state = snapshot.link.state
        self.banner = snapshot.link.banner
