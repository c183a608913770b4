"""
Currency service admin dashboard
Flet interface to start/stop the server and watch connected clients
"""

import argparse
import logging

import flet as ft

from currency import store
from currency.log import configure_logging
from currency.server import CurrencyServer

log = logging.getLogger("admin_dashboard")


class AdminDashboard:
    """Flet admin interface"""

    EVENT_ICONS = {
        "server_started": "🟢",
        "server_stopped": "🔴",
        "client_connected": "👤➡️",
        "client_disconnected": "👤⬅️",
        "query_served": "🔎",
        "query_rejected": "⚠️",
    }

    def __init__(self, server: CurrencyServer):
        self.server = server
        self.page: ft.Page = None
        self.clients_table: ft.DataTable = None
        self.stats_column: ft.Column = None
        self.status_text: ft.Text = None
        self.server_button: ft.Button = None
        self.logs_column: ft.Column = None

        self.server.add_listener(self._on_server_event)

    def _on_server_event(self, event: str, data: dict):
        if self.page:
            self._add_log(event, data)
            self._refresh_data()

    @classmethod
    def describe_event(cls, event: str, data: dict) -> str:
        msg = f"{cls.EVENT_ICONS.get(event, '📋')} {event}"
        if "address" in data:
            msg += f" - {data['address']}"
        if "matches" in data:
            msg += f" [{data['matches']} match(es)]"
        if "error" in data:
            msg += f" [{data['error']}]"
        return msg

    def _add_log(self, event: str, data: dict):
        if not self.logs_column:
            return

        log_text = ft.Text(self.describe_event(event, data), size=12, color=ft.Colors.GREY_400)
        self.logs_column.controls.insert(0, log_text)

        # Keep the last 50 lines only
        if len(self.logs_column.controls) > 50:
            self.logs_column.controls.pop()

    def _refresh_data(self):
        if not self.page:
            return
        self._update_clients_table()
        self._update_stats()
        try:
            self.page.update()
        except RuntimeError as err:
            # page closed while a connection thread was still reporting
            log.debug("dashboard update skipped: %s", err)

    def _update_clients_table(self):
        if not self.clients_table:
            return

        rows = []
        for client in self.server.get_clients_info():
            rows.append(
                ft.DataRow(
                    cells=[
                        ft.DataCell(ft.Text(str(client["conn_id"]))),
                        ft.DataCell(ft.Text(client["address"])),
                        ft.DataCell(ft.Text(client["duration"])),
                        ft.DataCell(ft.Text(str(client["requests"]))),
                        ft.DataCell(ft.Text(str(client["errors"]))),
                        ft.DataCell(
                            ft.IconButton(
                                icon=ft.Icons.LOGOUT,
                                icon_color=ft.Colors.RED_400,
                                tooltip="Close connection",
                                data=client["conn_id"],
                                on_click=self._kick_client
                            )
                        ),
                    ]
                )
            )

        self.clients_table.rows = rows

    def _update_stats(self):
        if not self.stats_column:
            return

        stats = self.server.get_stats()
        labels = [
            ("Active connections", stats["active"], ft.Icons.LINK),
            ("Total connections", stats["connections"], ft.Icons.HISTORY),
            ("Requests", stats["requests"], ft.Icons.SEARCH),
            ("Rejected", stats["errors"], ft.Icons.ERROR_OUTLINE),
            ("Currencies loaded", stats["currencies"], ft.Icons.CURRENCY_EXCHANGE),
        ]
        self.stats_column.controls = [
            ft.Container(
                content=ft.Row([
                    ft.Icon(icon, color=ft.Colors.BLUE_300),
                    ft.Text(label, weight=ft.FontWeight.BOLD),
                    ft.Container(
                        content=ft.Text(str(value), size=12),
                        bgcolor=ft.Colors.BLUE_700,
                        border_radius=10,
                        padding=ft.padding.symmetric(horizontal=8, vertical=2),
                    ),
                ], spacing=10),
                padding=10,
                border_radius=8,
                bgcolor=ft.Colors.SURFACE_CONTAINER_HIGHEST,
                margin=ft.margin.only(bottom=5),
            )
            for label, value, icon in labels
        ]

    def _show_snack(self, message: str, color):
        self.page.snack_bar = ft.SnackBar(content=ft.Text(message), bgcolor=color)
        self.page.snack_bar.open = True

    def _kick_client(self, e):
        conn_id = e.control.data
        if self.server.kick_client(conn_id):
            self._show_snack(f"Connection {conn_id} closed", ft.Colors.ORANGE_700)
            self._refresh_data()

    def _toggle_server(self, e):
        if self.server.running:
            self.server.stop()
            self.server_button.content = ft.Text("▶️ Start server")
            self.server_button.bgcolor = ft.Colors.GREEN_700
            self.status_text.value = "🔴 Server stopped"
            self.status_text.color = ft.Colors.RED_400
        else:
            try:
                self.server.start()
                self.server_button.content = ft.Text("⏹️ Stop server")
                self.server_button.bgcolor = ft.Colors.RED_700
                kind = f"{self.server.network}+tls" if self.server.secure else self.server.network
                self.status_text.value = f"🟢 Serving on {self.server.endpoint} ({kind})"
                self.status_text.color = ft.Colors.GREEN_400
            except OSError as err:
                self._show_snack(f"❌ Error: {err}", ft.Colors.RED_700)
                self.status_text.value = f"❌ Cannot listen on {self.server.endpoint}"
                self.status_text.color = ft.Colors.ORANGE_400

        self.page.update()

    def build(self, page: ft.Page):
        self.page = page
        page.title = "🛠️ Admin Dashboard - Currency Service"
        page.theme_mode = ft.ThemeMode.DARK
        page.padding = 20
        page.bgcolor = ft.Colors.GREY_900

        self.status_text = ft.Text("🔴 Server stopped", size=14, color=ft.Colors.RED_400)

        self.server_button = ft.Button(
            content=ft.Text("▶️ Start server"),
            on_click=self._toggle_server,
            bgcolor=ft.Colors.GREEN_700,
            color=ft.Colors.WHITE,
            style=ft.ButtonStyle(padding=15)
        )

        header = ft.Container(
            content=ft.Row([
                ft.Column([
                    ft.Text("🛠️ Currency Service", size=28, weight=ft.FontWeight.BOLD),
                    self.status_text,
                ], spacing=5),
                self.server_button,
            ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
            padding=20,
            bgcolor=ft.Colors.SURFACE_CONTAINER,
            border_radius=12,
        )

        self.clients_table = ft.DataTable(
            columns=[
                ft.DataColumn(ft.Text("#", weight=ft.FontWeight.BOLD)),
                ft.DataColumn(ft.Text("Address", weight=ft.FontWeight.BOLD)),
                ft.DataColumn(ft.Text("Connected for", weight=ft.FontWeight.BOLD)),
                ft.DataColumn(ft.Text("Requests", weight=ft.FontWeight.BOLD)),
                ft.DataColumn(ft.Text("Errors", weight=ft.FontWeight.BOLD)),
                ft.DataColumn(ft.Text("Actions", weight=ft.FontWeight.BOLD)),
            ],
            rows=[],
            border=ft.border.all(1, ft.Colors.GREY_700),
            border_radius=10,
            heading_row_color=ft.Colors.SURFACE_CONTAINER_HIGHEST,
            data_row_max_height=50,
        )

        clients_section = ft.Container(
            content=ft.Column([
                ft.Text("👥 Connected clients", size=20, weight=ft.FontWeight.BOLD),
                ft.Container(
                    content=self.clients_table,
                    bgcolor=ft.Colors.SURFACE_CONTAINER,
                    border_radius=10,
                    padding=10,
                ),
            ], spacing=10),
            expand=2,
        )

        self.stats_column = ft.Column(spacing=5)
        self._update_stats()

        stats_section = ft.Container(
            content=ft.Column([
                ft.Text("📊 Statistics", size=20, weight=ft.FontWeight.BOLD),
                ft.Container(
                    content=self.stats_column,
                    bgcolor=ft.Colors.SURFACE_CONTAINER,
                    border_radius=10,
                    padding=15,
                ),
            ], spacing=10),
            width=300,
        )

        self.logs_column = ft.Column(
            spacing=3,
            scroll=ft.ScrollMode.AUTO,
            height=200,
        )

        logs_section = ft.Container(
            content=ft.Column([
                ft.Text("📋 Events", size=16, weight=ft.FontWeight.BOLD),
                ft.Container(
                    content=self.logs_column,
                    bgcolor=ft.Colors.SURFACE_CONTAINER,
                    border_radius=10,
                    padding=10,
                ),
            ], spacing=5),
        )

        main_content = ft.Row([
            clients_section,
            stats_section,
        ], spacing=20, expand=True, vertical_alignment=ft.CrossAxisAlignment.START)

        page.add(
            header,
            ft.Container(height=20),
            main_content,
            ft.Container(height=15),
            logs_section,
        )


def main(argv=None):
    parser = argparse.ArgumentParser(description="Currency service admin dashboard")
    parser.add_argument("-e", "--endpoint", default=":4040", help="service endpoint")
    parser.add_argument("-n", "--network", default="tcp", help="network protocol [tcp,tcp4,tcp6,unix]")
    parser.add_argument("--data", default=None, help="currency CSV file")
    args = parser.parse_args(argv)

    configure_logging("INFO")
    server = CurrencyServer(
        store.load(args.data or store.DEFAULT_DATASET),
        network=args.network,
        endpoint=args.endpoint,
    )

    def app(page: ft.Page):
        AdminDashboard(server).build(page)

    ft.run(app)


if __name__ == "__main__":
    main()
