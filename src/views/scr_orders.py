from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, DataTable, MarkdownViewer

from db.errors import BackendError
from store.orders import STATUS_LABELS, OrderWithLines
from utils.messages import OrdersChangedMessage, SessionReadyMessage
from utils.pure import format_rupiah, generate_markdown_table
from views.base_screen import BaseScreen


class OrdersScreen(BaseScreen):
    """
    The guest's past orders, newest first, with the selected order's lines.

    Listens for changes on this session's orders, so a status set from the
    admin console shows up without a manual refresh.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[int, OrderWithLines] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("Start Shopping", id="btn-shop")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order", "Date", "Status", "Items", "Total")
        self._watch()
        self.load_orders()

    def on_unmount(self) -> None:
        self.app.state.orders.unwatch()

    def _watch(self) -> None:
        self.app.state.orders.watch(lambda: self.app.post_message(OrdersChangedMessage()))

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    def handle_refresh(self) -> None:
        self.load_orders()

    def handle_state_changed(self, message: Message) -> None:
        super().handle_state_changed(message)
        if isinstance(message, SessionReadyMessage):
            self._watch()
        if isinstance(message, (OrdersChangedMessage, SessionReadyMessage)):
            self.load_orders()

    @on(Button.Pressed, "#btn-shop")
    async def handle_shop(self) -> None:
        await self.app.open_mode("catalog")

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        self._render_detail(self._orders.get(int(event.row_key.value)))

    @work(exclusive=True, group="orders")
    async def load_orders(self) -> None:
        try:
            orders = await self.app.state.orders.load()
        except BackendError as e:
            self.notify(f"Could not load your orders: {e}", severity="error")
            return
        if not self.is_mounted:
            return
        self._orders = {o.order.id: o for o in orders}

        table = self.query_one(DataTable)
        table.clear()
        for entry in orders:
            order = entry.order
            table.add_row(
                f"#{order.id}",
                order.created_at.strftime("%Y-%m-%d %H:%M"),
                STATUS_LABELS.get(order.status, order.status),
                entry.item_count,
                format_rupiah(order.total_amount),
                key=str(order.id),
            )
        if orders:
            table.move_cursor(row=0)
            self._render_detail(orders[0])
        else:
            self._render_detail(None)

    def _render_detail(self, entry: Optional[OrderWithLines]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if entry is None:
            if self._orders:
                viewer.document.update("### Select an order to view its details.")
            else:
                viewer.document.update(
                    "### You have no orders yet.\n\nStart shopping in the catalog."
                )
            return

        order = entry.order
        header = (
            f"### Order #{order.id} · {STATUS_LABELS.get(order.status, order.status)}\n"
            f"Date: {order.created_at:%Y-%m-%d %H:%M}  \n"
            f"Ship To: {order.shipping_address}  \n"
            f"Payment: {order.payment_method}\n\n"
        )
        rows = [
            [
                line.display_name,
                line.quantity,
                format_rupiah(line.price_at_purchase),
                format_rupiah(line.line_total),
            ]
            for line in entry.lines
        ]
        table = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
        )
        footer = f"\n\n**Total:** {format_rupiah(order.total_amount)}"
        viewer.document.update(header + table + footer)
