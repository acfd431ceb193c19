from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Input, MarkdownViewer

from db.errors import BackendError
from store.catalog import list_products
from utils.pure import format_rupiah, generate_markdown_table
from views.base_screen import BaseScreen

WELCOME_MD = """\
# Gedebog

Keripik batang pisang, crunchy banana-stem chips in four flavors.

Search the catalog below, or open it from the menu.
"""


class HomeScreen(BaseScreen):
    """
    Landing page: welcome text, featured products, and a search box that opens the catalog.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(WELCOME_MD, id="md-home", show_table_of_contents=False)
            yield Input(id="input-home-search", placeholder="Search by name or flavor...")
            yield Button("Browse Catalog", id="btn-browse", variant="primary")

    def on_mount(self) -> None:
        self.load_featured()

    @on(ScreenResume)
    def handle_resume_home(self) -> None:
        self.load_featured()

    @work(exclusive=True)
    async def load_featured(self) -> None:
        try:
            products = await list_products(self.app.state.backend)
        except BackendError as e:
            self.notify(f"Could not load products: {e}", severity="error")
            return
        featured = [p for p in products if p.stock > 0][:3]
        md = WELCOME_MD
        if featured:
            rows = [[p.name, p.flavor, format_rupiah(p.price)] for p in featured]
            md += "\n### Featured\n\n" + generate_markdown_table(
                ["Product", "Flavor", "Price"], rows, ["l", "l", "r"]
            )
        await self.query_one("#md-home", MarkdownViewer).document.update(md)

    @on(Input.Submitted, "#input-home-search")
    @on(Button.Pressed, "#btn-browse")
    async def handle_search(self) -> None:
        self.app.search_term = self.query_one("#input-home-search", Input).value.strip()
        await self.app.open_mode("catalog")
