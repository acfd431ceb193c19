from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select, Sparkline

from db.errors import BackendError
from db.models import ORDER_STATUSES
from store.admin import DashboardStats, load_dashboard, set_order_status
from utils.messages import OrdersChangedMessage
from utils.pure import format_rupiah, generate_markdown_table
from views.base_screen import BaseScreen


class AdminDashboardScreen(BaseScreen):
    """
    Sales dashboard: totals, revenue per day, and the most recent orders,
    whose status can be set to any value.
    """

    def __init__(self) -> None:
        super().__init__()
        self._selected_order: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-stats", show_table_of_contents=False)
            yield Label("Revenue per day", id="label-revenue")
            yield Sparkline([], id="spark-revenue")
            yield DataTable(id="table-recent")
            with Horizontal(id="hort-status"):
                yield Select(
                    [(s.capitalize(), s) for s in ORDER_STATUSES],
                    prompt="Set status...",
                    id="select-status",
                )
                yield Button("Apply", id="btn-apply-status", variant="success")
                yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order", "Customer", "Total", "Status", "Date")
        self.handle_reload()

    def handle_state_changed(self, message: Message) -> None:
        super().handle_state_changed(message)
        if isinstance(message, OrdersChangedMessage):
            self.handle_reload()

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True, group="dashboard")
    async def handle_reload(self) -> None:
        try:
            stats = await load_dashboard(self.app.state.backend)
        except BackendError as e:
            self.notify(f"Could not load dashboard: {e}", severity="error")
            return
        self._render(stats)

    def _render(self, stats: DashboardStats) -> None:
        summary = generate_markdown_table(
            ["Total Revenue", "Total Orders", "Total Items Sold", "Active Customers"],
            [[format_rupiah(stats.revenue), stats.orders, stats.items_sold, stats.customers]],
        )
        days = generate_markdown_table(
            ["Day", "Revenue"],
            [[day, format_rupiah(amount)] for day, amount in stats.revenue_by_day],
            ["l", "r"],
        )
        md = "### Sales Dashboard\n\n" + summary
        if days:
            md += "\n\n#### Revenue Analytics\n\n" + days
        self.query_one("#md-stats", MarkdownViewer).document.update(md)
        self.query_one("#spark-revenue", Sparkline).data = [
            amount for _, amount in stats.revenue_by_day
        ]

        table = self.query_one(DataTable)
        table.clear()
        for order in stats.recent_orders:
            table.add_row(
                f"#{order.id}",
                order.shipping_address,
                format_rupiah(order.total_amount),
                order.status,
                order.created_at.strftime("%Y-%m-%d %H:%M"),
                key=str(order.id),
            )

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value is not None:
            self._selected_order = int(event.row_key.value)

    @on(Button.Pressed, "#btn-apply-status")
    @work(exclusive=True)
    async def handle_apply_status(self) -> None:
        status = self.query_one("#select-status", Select).value
        if self._selected_order is None:
            self.notify("Select an order first.", severity="warning")
            return
        if status is Select.BLANK:
            self.notify("Choose a status to apply.", severity="warning")
            return
        try:
            order = await set_order_status(
                self.app.state.backend, self._selected_order, str(status)
            )
        except (BackendError, ValueError) as e:
            self.notify(f"Could not update order: {e}", severity="error")
            return
        self.notify(f"Order #{order.id} is now {order.status}.")
        self.app.post_message(OrdersChangedMessage())
