from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, MarkdownViewer

from db.models import Product
from utils.pure import format_rupiah, generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail with an add-to-cart button.
    Returns True if the cart changed, False if not.
    """

    def __init__(self, product: Product) -> None:
        super().__init__()
        self._prod = product

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("", id="label-in-cart")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        prod = self._prod
        table_rows = [
            ["Name", prod.name],
            ["Flavor", prod.flavor or "-"],
            ["Price", format_rupiah(prod.price)],
            ["Stock", prod.stock],
            ["Image", prod.image_url or "-"],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        header_md = f"### {prod.name}\n\n{prod.description}\n\n"
        await self.query_one(MarkdownViewer).document.update(header_md + md_table_str)

        if prod.stock < 1:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"

        self._update_in_cart()
        self.query_one("#btn-addcart").focus()

    def _update_in_cart(self) -> None:
        qty = self.app.state.cart.quantity_of(self._prod.id)
        self.query_one("#label-in-cart", Label).update(
            f"In cart: {qty}" if qty else "Not in cart yet"
        )

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        if await self.app.state.cart.add_to_cart(self._prod):
            self.app.notify(f"{self._prod.name} added to cart.")
        self.dismiss(True)
