from typing import Any, Callable, Optional

from .cache import SessionCache
from .config import CART_STORAGE_KEY, LOCAL_DB_PATH, WISHLIST_STORAGE_KEY
from .local_store import LocalStore
from .logger import get_logger
from .manager import CartManager, ListManager, WishlistManager
from .remote_store import RemoteStore
from .session import SessionContext

logger = get_logger(__name__)

CART_COLLECTION = 'carts'
WISHLIST_COLLECTION = 'wishlist'


class Storefront:
    """
    Everything one browser session needs, built once and passed around:
    the session identity, a session cache, and the cart and wishlist managers
    wired to their local and remote stores.

    Without a Firestore client the managers run on local storage only.
    """

    def __init__(self, client_id: str, firestore_client=None, db_path: str = LOCAL_DB_PATH,
                 on_change: Optional[Callable[[ListManager], Any]] = None,
                 on_open_cart: Optional[Callable[[], Any]] = None,
                 **remote_options):
        self.session = SessionContext(client_id=client_id)
        self.cache = SessionCache()

        cart_remote = wishlist_remote = None
        if firestore_client is not None:
            cart_remote = RemoteStore(firestore_client, CART_COLLECTION, self.cache, **remote_options)
            wishlist_remote = RemoteStore(firestore_client, WISHLIST_COLLECTION, self.cache, **remote_options)
        else:
            logger.warning("Firestore not available; %s will use local storage only", client_id)

        self.cart = CartManager(
            LocalStore(db_path, CART_STORAGE_KEY, client_id),
            cart_remote,
            on_change=on_change,
            on_open_panel=on_open_cart,
        )
        self.wishlist = WishlistManager(
            LocalStore(db_path, WISHLIST_STORAGE_KEY, client_id),
            wishlist_remote,
            on_change=on_change,
        )

    def manager(self, list_type: str) -> ListManager:
        if list_type == 'cart':
            return self.cart
        if list_type == 'wishlist':
            return self.wishlist
        raise KeyError(list_type)

    def load(self) -> None:
        self.cart.load(self.session)
        self.wishlist.load(self.session)

    def login(self, user_id: str) -> dict:
        self.session = self.session.login(user_id)
        logger.info("User %s signed in on %s, syncing lists", user_id, self.session.client_id)
        return {
            'cart': self.cart.on_login(self.session),
            'wishlist': self.wishlist.on_login(self.session),
        }

    def logout(self) -> dict:
        self.session = self.session.logout()
        logger.info("Signed out on %s, switching to local storage", self.session.client_id)
        return {
            'cart': self.cart.on_logout(self.session),
            'wishlist': self.wishlist.on_logout(self.session),
        }
