from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, RadioButton, RadioSet

from db.models import PAYMENT_METHODS
from store.checkout import CheckoutError, ShippingDetails, place_order
from utils.logger import get_logger
from utils.pure import format_rupiah, generate_markdown_table
from views.modal_dialog import DialogModal

_logger = get_logger(__name__)


class CheckoutModal(ModalScreen[int | None]):
    """
    A modal screen for check out: order summary, shipping details and payment method.
    Returns the new order id on success, None otherwise.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Full Name")
            yield Input(id="input-name")
            yield Label("Phone Number")
            yield Input(id="input-phone", type="text")
            yield Label("Address")
            yield Input(placeholder="Jl. Merdeka No. 1, Bandung", id="input-address-line")
            yield Label("Payment Method")
            with RadioSet(id="radio-payment"):
                for key, label in PAYMENT_METHODS.items():
                    yield RadioButton(label, value=key == "cod", id=f"radio-{key}")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        cart = self.app.state.cart
        headers = ["Product", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [line.name, format_rupiah(line.price), line.quantity, format_rupiah(line.line_total)]
            for line in cart.lines
        ]
        md = "### Order Summary\n\n" + generate_markdown_table(headers, rows, ["l", "r", "c", "r"])
        md += f"\n\n**Total:** {format_rupiah(cart.total_price)}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _payment_method(self) -> str:
        pressed = self.query_one("#radio-payment", RadioSet).pressed_button
        if pressed is None or pressed.id is None:
            return "cod"
        return pressed.id.removeprefix("radio-")

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        fields = {
            "#input-name": "Full name",
            "#input-phone": "Phone number",
            "#input-address-line": "Address",
        }
        for selector, label in fields.items():
            field = self.query_one(selector, Input)
            if not field.value.strip():
                field.focus()
                field.add_class("-invalid")
                self.notify(f"{label} is required.", severity="error")
                return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        details = ShippingDetails(
            name=self.query_one("#input-name", Input).value,
            phone=self.query_one("#input-phone", Input).value,
            address=self.query_one("#input-address-line", Input).value,
            payment_method=self._payment_method(),
        )

        # advisory only: a second submit is ignored while this one runs
        submit = self.query_one("#btn-submit", Button)
        submit.disabled = True
        submit.label = "Processing..."
        try:
            result = await place_order(self.app.state.backend, self.app.state.cart, details)
        except (CheckoutError, ValueError) as e:
            self.notify(str(e), severity="error")
            return
        finally:
            submit.disabled = False
            submit.label = "Place Order"

        if result.stock_shortfalls:
            _logger.warning(
                f"Order #{result.order.id} placed with stock not reduced for {result.stock_shortfalls}"
            )
        self.app.notify(f"Order placed successfully! Your order number is #{result.order.id}.")
        self.dismiss(result.order.id)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
