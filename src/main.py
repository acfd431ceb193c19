import argparse
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.widgets import LoadingIndicator

from db.errors import BackendError
from store.session import SessionResolutionError
from utils.config import Settings
from utils.logger import get_logger
from utils.messages import (
    CartChangedMessage,
    ModeSwitchedMessage,
    OrdersChangedMessage,
    ProductsChangedMessage,
    QuitRequestedMessage,
    SessionReadyMessage,
)
from utils.state import AppState
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal
from views.scr_admin_dashboard import AdminDashboardScreen
from views.scr_admin_stock import AdminStockScreen
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_home import HomeScreen
from views.scr_orders import OrdersScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "home": HomeScreen,
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "orders": OrdersScreen,
        "admin_dashboard": AdminDashboardScreen,
        "admin_stock": AdminStockScreen,
    }

    CUSTOMER_MODES = {
        "home": "Home",
        "catalog": "Catalog",
        "cart": "Cart",
        "orders": "My Orders",
    }
    ADMIN_MODES = {"admin_dashboard": "Sales Dashboard", "admin_stock": "Stock"}

    CSS_PATH = [
        "views/styles/index.tcss",
        "views/styles/catalog.tcss",
        "views/styles/cart.tcss",
        "views/styles/orders.tcss",
        "views/styles/admin.tcss",
    ]

    state: AppState

    def __init__(
        self,
        settings: Optional[Settings] = None,
        initial_mode: str = "home",
        search_term: str = "",
    ):
        super().__init__()
        if initial_mode not in self.MODES:
            raise ValueError(f"Unknown mode: {initial_mode}")
        self.initial_mode = initial_mode
        self.search_term = search_term
        self.state = AppState.build(
            settings or Settings.from_env(),
            on_cart_change=lambda: self.post_message(CartChangedMessage()),
            notify=lambda message, severity: self.notify(message, severity=severity),
        )

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    async def on_unmount(self) -> None:
        await self.state.shutdown()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.exit()

    @on(CartChangedMessage)
    @on(OrdersChangedMessage)
    @on(ProductsChangedMessage)
    @on(SessionReadyMessage)
    def forward_to_screens(self, message: Message) -> None:
        """Hand state changes to every screen of the active mode."""
        for screen in self.screen_stack:
            if isinstance(screen, BaseScreen):
                screen.handle_state_changed(message)
        if isinstance(message, ProductsChangedMessage) and self.state.started:
            self.reload_cart()

    @work(exclusive=True, group="cart")
    async def reload_cart(self) -> None:
        # product edits don't touch cart rows, so no realtime echo arrives
        try:
            await self.state.cart.load()
        except BackendError as e:
            _logger.error(f"Error loading cart: {e}")
            self.notify("Could not load your cart.", severity="error")

    async def open_mode(self, mode: str) -> None:
        if self.current_mode != mode:
            self.post_message(ModeSwitchedMessage(self.current_mode, mode))
            await self.switch_mode(mode)

    @work
    async def main_flow(self):
        try:
            session_id = await self.state.start()
        except (SessionResolutionError, BackendError) as e:
            _logger.error(f"Error initializing cart: {e}")
            await self.push_screen_wait(
                DialogModal(
                    "Unable to initialize session, reload.",
                    primary_text="Quit",
                    tone="error",
                )
            )
            self.exit(return_code=1)
            return
        _logger.info(f"Storefront ready for session {session_id}")
        await self.open_mode(self.initial_mode)
        self.post_message(SessionReadyMessage())


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Gedebog storefront and admin console")
    parser.add_argument(
        "--mode",
        default="home",
        choices=sorted(StorefrontApp.MODES),
        help="screen to open first",
    )
    parser.add_argument(
        "--search", "-q", default="", help="search term for the catalog screen"
    )
    args = parser.parse_args(argv)
    mode = "catalog" if args.search and args.mode == "home" else args.mode
    app = StorefrontApp(initial_mode=mode, search_term=args.search)
    app.run()
    return app.return_code or 0


if __name__ == "__main__":
    raise SystemExit(main())
