from typing import Dict, List

from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import DataTable, Input, Label

from db.errors import BackendError
from db.models import Product
from store.catalog import filter_products, list_products
from utils.messages import CartChangedMessage, ProductsChangedMessage
from utils.pure import format_rupiah
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class CatalogScreen(BaseScreen):
    """
    Product catalog with a search box filtering on name or flavor.
    """

    # only here to be displayed in footer, keys are handled in on_key
    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
        Binding("a", "noop", "Add to Cart", show=True),
    ]

    def __init__(self):
        super().__init__()
        self._products: List[Product] = []
        self._by_id: Dict[int, Product] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(id="input-search", placeholder="Search by name or flavor...")
        yield Label("", id="label-result-cnt")
        yield DataTable(id="table-products")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Flavor", "Price", "Stock", "In Cart")

        search = self.query_one("#input-search", Input)
        search.value = self.app.search_term
        search.focus()
        self.load_products()

    @on(ScreenResume)
    def handle_resume_catalog(self) -> None:
        search = self.query_one("#input-search", Input)
        if search.value != self.app.search_term:
            search.value = self.app.search_term
        self.load_products()

    def handle_state_changed(self, message: Message) -> None:
        super().handle_state_changed(message)
        if isinstance(message, ProductsChangedMessage):
            self.load_products()
        elif isinstance(message, CartChangedMessage):
            self.render_products()

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.app.search_term = message.value
            self.render_products()

    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if self.focused != table or table.row_count == 0:
            return
        product = self._product_at_cursor()
        if product is None:
            return
        if event.key == "enter":
            await self.app.push_screen(ProdDetailModal(product))
        elif event.key == "a":
            self.add_product(product)

    def _product_at_cursor(self):
        table = self.query_one(DataTable)
        row = table.get_row_at(table.cursor_row)
        return self._by_id.get(int(row[0])) if row else None

    @work()
    async def add_product(self, product: Product) -> None:
        if product.stock < 1:
            self.notify(f"{product.name} is out of stock.", severity="warning")
            return
        if await self.app.state.cart.add_to_cart(product):
            self.notify(f"{product.name} added to cart.")

    @work(exclusive=True)
    async def load_products(self) -> None:
        try:
            self._products = await list_products(self.app.state.backend)
        except BackendError as e:
            self.notify(f"Could not load products: {e}", severity="error")
            return
        self._by_id = {p.id: p for p in self._products}
        self.render_products()

    def render_products(self) -> None:
        if not self.is_mounted:
            return
        term = self.query_one("#input-search", Input).value
        matches = filter_products(self._products, term)
        cart = self.app.state.cart

        table = self.query_one(DataTable)
        table.clear()
        for p in matches:
            table.add_row(
                p.id,
                p.name,
                p.flavor,
                format_rupiah(p.price),
                p.stock if p.stock > 0 else "sold out",
                cart.quantity_of(p.id) or "",
            )

        label = self.query_one("#label-result-cnt", Label)
        if term.strip() and not matches:
            label.update(f'No products found for "{term.strip()}".')
        elif term.strip():
            label.update(f'{len(matches)} result(s) for "{term.strip()}"')
        else:
            label.update(f"{len(matches)} products")
