from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class SessionReadyMessage(Message):
    """
    Fired once the guest session is resolved and the cart is loaded,
    so screens mounted before that can refresh
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired by the cart state manager whenever its local cart list changes,
    either from an optimistic update or a reload.
    Will trigger a refresh of the cart screen and the cart badge.

    Always posted at App level, screens receive it through App.forward_to_screens
    """

    bubble = True


class OrdersChangedMessage(Message):
    """
    Fired when an order is placed or an order's status changes.
    Listened to by order history and the admin dashboard
    """

    bubble = True


class ProductsChangedMessage(Message):
    """
    Fired after an admin creates, edits or deletes a product, or changes stock
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
