from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label

from db.models import Product
from utils.pure import parse_non_negative_int


@dataclass(frozen=True)
class ProductForm:
    name: str
    description: str
    flavor: str
    price: int
    stock: int
    image_path: Optional[str] = None

    def fields(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "flavor": self.flavor,
            "price": self.price,
            "stock": self.stock,
        }


class ProductFormModal(ModalScreen[Optional[ProductForm]]):
    """
    Create or edit a product. Returns the filled form, or None when cancelled.
    """

    def __init__(self, product: Optional[Product] = None) -> None:
        super().__init__()
        self._prod = product

    def compose(self) -> ComposeResult:
        prod = self._prod
        with Vertical(id="div-product-form"):
            yield Label("Edit Product" if prod else "Add Product", id="label-form-title")
            yield Label("Name")
            yield Input(prod.name if prod else "", id="input-name")
            yield Label("Description")
            yield Input(prod.description if prod else "", id="input-descr")
            yield Label("Flavor")
            yield Input(prod.flavor if prod else "", id="input-flavor")
            with Horizontal():
                with Vertical():
                    yield Label("Price (Rp)")
                    yield Input(
                        str(prod.price) if prod else "",
                        id="input-price",
                        type="integer",
                        validators=[Number(minimum=0)],
                    )
                with Vertical():
                    yield Label("Stock")
                    yield Input(
                        str(prod.stock) if prod else "0",
                        id="input-stock",
                        type="integer",
                        validators=[Number(minimum=0)],
                    )
            yield Label("Image file (optional)")
            yield Input(placeholder="/path/to/image.png", id="input-image")
            with Horizontal():
                yield Button("Cancel", id="btn-quit")
                yield Button("Save", id="btn-save", variant="success")

    def on_mount(self) -> None:
        self.query_one("#input-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _invalid(self, selector: str, msg: str) -> None:
        field = self.query_one(selector, Input)
        field.focus()
        field.add_class("-invalid")
        self.notify(msg, severity="error")

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        name = self.query_one("#input-name", Input).value.strip()
        if not name:
            self._invalid("#input-name", "Product name is required.")
            return
        price = parse_non_negative_int(self.query_one("#input-price", Input).value)
        if price is None:
            self._invalid("#input-price", "Price must be a whole, non-negative number.")
            return
        stock = parse_non_negative_int(self.query_one("#input-stock", Input).value)
        if stock is None:
            self._invalid("#input-stock", "Stock must be a whole, non-negative number.")
            return
        image_path = self.query_one("#input-image", Input).value.strip() or None

        self.dismiss(
            ProductForm(
                name=name,
                description=self.query_one("#input-descr", Input).value.strip(),
                flavor=self.query_one("#input-flavor", Input).value.strip(),
                price=price,
                stock=stock,
                image_path=image_path,
            )
        )

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self) -> None:
        self.dismiss(None)
