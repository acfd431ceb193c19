from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from db.models import CartEntry
from utils.messages import CartChangedMessage, OrdersChangedMessage, SessionReadyMessage
from utils.pure import format_rupiah
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: CartEntry):
        super().__init__()
        self.item = item

    def compose(self):
        item = self.item
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(f"{item.name} ({item.flavor})", id="label-item-name")
                yield Label(format_rupiah(item.price), id="label-item-price")
                yield Label(format_rupiah(item.line_total), id="label-item-total")
            with Container(id="div-actions"):
                yield Button("-", id="btn-sub-qty", disabled=item.quantity <= 1)
                yield Label(str(item.quantity), id="label-item-qty")
                yield Button("+", id="btn-add-qty", disabled=item.quantity >= item.stock)
                yield Button("Remove", id="btn-remove", variant="error")

    @on(Button.Pressed, "#btn-sub-qty")
    @work()
    async def handle_sub_qty(self):
        await self.app.state.cart.update_quantity(self.item.product_id, self.item.quantity - 1)

    @on(Button.Pressed, "#btn-add-qty")
    @work()
    async def handle_add_qty(self):
        await self.app.state.cart.update_quantity(self.item.product_id, self.item.quantity + 1)

    @on(Button.Pressed, "#btn-remove")
    @work()
    async def handle_remove_item(self):
        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                f"Remove {self.item.name} from your cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )
        if remove_confirmed:
            if await self.app.state.cart.remove_from_cart(self.item.product_id):
                self.app.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Lines of the session's cart with quantity controls, the running total, and checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total: Rp 0", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Continue Shopping", id="btn-shop")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.render_cart()

    @on(ScreenResume)
    def handle_resume_cart(self) -> None:
        self.render_cart()

    def handle_state_changed(self, message: Message) -> None:
        super().handle_state_changed(message)
        if isinstance(message, (CartChangedMessage, SessionReadyMessage)):
            self.render_cart()

    @work(exclusive=True, group="render-cart")
    async def render_cart(self) -> None:
        """
        Rebuild the line widgets from the cart manager's current list
        """
        cart = self.app.state.cart
        lines = list(cart.lines)

        content = self.query_one("#vertscroll-content")
        if [c.item for c in content.children] != lines:
            await content.remove_children()
            await content.mount_all([CartItemWidget(item) for item in lines])

        if not lines:
            content.add_class("no-items")
        else:
            content.remove_class("no-items")

        self.query_one("#label-cart-total", Label).update(
            f"Total ({cart.total_items} items): {format_rupiah(cart.total_price)}"
        )
        self.query_one("#btn-checkout", Button).disabled = cart.is_empty

    @on(Button.Pressed, "#btn-shop")
    async def handle_shop(self) -> None:
        await self.app.open_mode("catalog")

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        cart = self.app.state.cart
        if cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            await cart.clear()

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        order_id = await self.app.push_screen_wait(CheckoutModal())
        if order_id:
            self.app.post_message(OrdersChangedMessage())
            await self.app.open_mode("orders")
