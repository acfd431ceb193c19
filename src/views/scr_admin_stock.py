from __future__ import annotations

import asyncio
import os
from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.message import Message
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label

from db.errors import BackendError
from db.models import Product
from store import admin
from utils.messages import ProductsChangedMessage
from utils.pure import format_rupiah, parse_non_negative_int
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal
from views.modal_product_form import ProductForm, ProductFormModal


class AdminStockScreen(BaseScreen):
    """
    Inventory: overwrite stock counts, add, edit and delete products.
    """

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[int, Product] = {}
        self.current_id: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-stock")
            with Horizontal(id="hort-controls"):
                with Vertical(id="div-new-inputs"):
                    yield Label("New Stock:", id="label-stock")
                    yield Input(
                        placeholder="absolute count",
                        id="input-stock",
                        type="integer",
                        validators=[Number(minimum=0)],
                    )
                with Horizontal(id="div-button"):
                    yield Button("Save Stock", id="btn-save-stock", variant="success")
                    yield Button("Add Product", id="btn-add", variant="primary")
                    yield Button("Edit", id="btn-edit")
                    yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Product Name", "Flavor", "Price", "Current Stock")
        self.load_products()

    def handle_state_changed(self, message: Message) -> None:
        super().handle_state_changed(message)
        if isinstance(message, ProductsChangedMessage):
            self.load_products()

    @on(ScreenResume)
    @work(exclusive=True, group="stock")
    async def load_products(self) -> None:
        try:
            products = await self.app.state.backend.list_products()
        except BackendError as e:
            self.notify(f"Could not load inventory: {e}", severity="error")
            return
        self._products = {p.id: p for p in products}

        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(
                f"#{p.id}", p.name, p.flavor, format_rupiah(p.price), p.stock, key=str(p.id)
            )
        if self.current_id in self._products:
            table.move_cursor(row=table.get_row_index(str(self.current_id)))

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        self.current_id = int(event.row_key.value)
        prod = self._products.get(self.current_id)
        if prod:
            self.query_one("#label-stock", Label).update(f"New Stock for {prod.name}:")
            self.query_one("#input-stock", Input).value = str(prod.stock)

    def _current(self) -> Optional[Product]:
        prod = self._products.get(self.current_id) if self.current_id else None
        if prod is None:
            self.notify("Select a product first.", severity="warning")
        return prod

    @on(Button.Pressed, "#btn-save-stock")
    @on(Input.Submitted, "#input-stock")
    @work(exclusive=True)
    async def handle_save_stock(self) -> None:
        prod = self._current()
        if prod is None:
            return
        stock_input = self.query_one("#input-stock", Input)
        new_stock = parse_non_negative_int(stock_input.value)
        if new_stock is None:
            stock_input.focus()
            stock_input.add_class("-invalid")
            self.notify("Stock must be a whole, non-negative number.", severity="error")
            return
        if new_stock == prod.stock:
            self.notify("Nothing to update.", severity="warning")
            return
        try:
            await admin.set_stock(self.app.state.backend, prod.id, new_stock)
        except (BackendError, ValueError) as e:
            self.notify(f"Stock update failed: {e}", severity="error")
            return
        self.notify("Stock updated!")
        self.app.post_message(ProductsChangedMessage())

    @on(Button.Pressed, "#btn-add")
    @work()
    async def handle_add(self) -> None:
        form = await self.app.push_screen_wait(ProductFormModal())
        if form is None:
            return
        try:
            prod = await admin.create_product(self.app.state.backend, **form.fields())
            await self._attach_image(prod, form)
        except (BackendError, ValueError, OSError) as e:
            self.notify(f"Could not add product: {e}", severity="error")
            return
        self.current_id = prod.id
        self.notify(f"{prod.name} added.")
        self.app.post_message(ProductsChangedMessage())

    @on(Button.Pressed, "#btn-edit")
    @work()
    async def handle_edit(self) -> None:
        prod = self._current()
        if prod is None:
            return
        form = await self.app.push_screen_wait(ProductFormModal(prod))
        if form is None:
            return
        try:
            prod = await admin.update_product(self.app.state.backend, prod.id, **form.fields())
            await self._attach_image(prod, form)
        except (BackendError, ValueError, OSError) as e:
            self.notify(f"Could not save product: {e}", severity="error")
            return
        self.notify(f"{prod.name} saved.")
        self.app.post_message(ProductsChangedMessage())

    async def _attach_image(self, prod: Product, form: ProductForm) -> None:
        if not form.image_path:
            return
        path = os.path.expanduser(form.image_path)

        def _read() -> bytes:
            with open(path, "rb") as f:
                return f.read()

        data = await asyncio.to_thread(_read)
        await admin.upload_product_image(
            self.app.state.backend, self.app.state.storage, prod.id, path, data
        )

    @on(Button.Pressed, "#btn-delete")
    @work()
    async def handle_delete(self) -> None:
        prod = self._current()
        if prod is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete {prod.name}? It will also leave every cart.",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            await admin.delete_product(self.app.state.backend, prod.id)
        except BackendError as e:
            self.notify(f"Could not delete product: {e}", severity="error")
            return
        self.current_id = None
        self.notify(f"{prod.name} deleted.")
        self.app.post_message(ProductsChangedMessage())
