from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Resize, ScreenResume
from textual.message import Message
from textual.screen import Screen
from textual.widgets import Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import CartChangedMessage, SessionReadyMessage
from utils.pure import format_rupiah, generate_markdown_table
from views.modal_dialog import QuitDialogModal
from views.modal_resize import ResizeScreenPromptModal


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Your Cart", id="label-info-1")
        yield Markdown("", id="md-cartinfo")
        yield Label("Shop", id="label-info-2")
        yield ListView(id="list-menu")
        yield Label("Admin", id="label-info-3")
        yield ListView(id="list-admin-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.CUSTOMER_MODES.items()
            ]
        )
        admin_menu: ListView = self.query_one("#list-admin-menu")
        await admin_menu.clear()
        await admin_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.ADMIN_MODES.items()
            ]
        )
        self.highlight_item(self.init_mode)
        self.update_cart_info()

    def update_cart_info(self) -> None:
        state = self.app.state
        cart = state.cart
        session = state.session_id or "-"
        table_rows = [
            ["Session", session[:8]],
            ["Items", cart.total_items],
            ["Total", format_rupiah(cart.total_price)],
        ]
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        self.query_one("#md-cartinfo", Markdown).update(md_table_str)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        await self.app.open_mode(selected_mode)

    def highlight_item(self, mode_str: str):
        for list_menu in self.query(ListView):
            for item in list_menu.children:
                item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Storefront",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """

        # auto gen titles and subtitles
        self.app.title = "Gedebog Store"
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                if k in self.app.ADMIN_MODES:
                    self.sub_title = "Admin · " + self.app.ADMIN_MODES[k]
                elif k in self.app.CUSTOMER_MODES:
                    self.sub_title = self.app.CUSTOMER_MODES[k]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def on_resize(self, event: Resize) -> None:
        min_width = 60
        min_height = 20
        if event.size.width < min_width or event.size.height < min_height:
            self.app.push_screen(ResizeScreenPromptModal(min_width, min_height))

    def handle_state_changed(self, message: Message) -> None:
        """
        Called by the app for cart, order and product changes.
        Screens override it to reload what they show.
        """
        if isinstance(message, (CartChangedMessage, SessionReadyMessage)):
            self._refresh_sidebar()

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self._refresh_sidebar()

    def _refresh_sidebar(self) -> None:
        if self._show_sidebar and self.is_mounted:
            for sidebar in self.query(Sidebar):
                sidebar.update_cart_info()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
