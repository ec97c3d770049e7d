from typing import Any, Callable, List, Optional

from .config import REMOTE_MAX_RETRIES
from .errors import CONFLICT, INVALID_ITEM, OFFLINE, InvalidItemError
from .local_store import LocalStore
from .logger import get_logger
from .merge import merge_items
from .models import (
    LineItem,
    add_line_item,
    adjust_line_quantity,
    remove_line_item,
    set_line_quantity,
)
from .remote_store import RemoteStore
from .session import SessionContext

logger = get_logger(__name__)

Mutator = Callable[[List[LineItem]], List[LineItem]]


class ListManager:
    """
    Owns the active cart or wishlist for one browser session.

    Every operation receives the caller's ``SessionContext``: an authenticated
    session works against the remote store, otherwise the local store is used.
    Either way the whole list is read, changed and written back, then
    ``on_change`` is called with the manager.
    """

    list_type = 'list'

    def __init__(self, local_store: LocalStore, remote_store: Optional[RemoteStore] = None,
                 on_change: Optional[Callable[['ListManager'], Any]] = None,
                 max_sync_attempts: int = REMOTE_MAX_RETRIES):
        self.local_store = local_store
        self.remote_store = remote_store
        self.on_change = on_change
        self.max_sync_attempts = max(1, max_sync_attempts)
        self.items: List[LineItem] = []

    # ---------- backend selection ----------

    def _uses_remote(self, session: SessionContext) -> bool:
        return session.is_authenticated and self.remote_store is not None

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self)
        except Exception:
            logger.exception("%s change callback failed", self.list_type)

    def _apply(self, session: SessionContext, mutator: Mutator) -> dict:
        if self._uses_remote(session):
            result = self.remote_store.update_items(session.user_id, mutator)
            if result['success']:
                self.items = result['items']
            elif result.get('error') == OFFLINE:
                # Remote unreachable: keep working on the in-memory list and
                # park it in the session cache until the next successful save.
                self.items = mutator(self.items)
                self.remote_store.cache.put(self.remote_store.cache_key(session.user_id), self.items)
                logger.warning("%s backend offline for %s; change kept locally", self.list_type, session.user_id)
                result = {'success': True, 'offline': True, 'items': self.items}
            else:
                logger.warning("%s update failed for %s: %s", self.list_type, session.user_id, result.get('error'))
        else:
            items = mutator(self.local_store.get_items())
            saved = self.local_store.save_items(items)
            self.items = items
            result = {'success': saved, 'items': items}
            if not saved:
                result['error'] = 'storage-error'

        self._notify()
        return result

    # ---------- loading and auth transitions ----------

    def load(self, session: SessionContext) -> dict:
        if self._uses_remote(session):
            result = self.remote_store.get_items(session.user_id)
            if result['success']:
                self.items = result['items']
            else:
                cached = self.remote_store.cached_items(session.user_id)
                self.items = cached if cached is not None else []
                logger.warning("Failed to load %s for %s: %s", self.list_type, session.user_id, result.get('error'))
        else:
            self.items = self.local_store.get_items()
            result = {'success': True, 'items': self.items}

        self._notify()
        return result

    def on_login(self, session: SessionContext) -> dict:
        """Reconcile the local list with the user's remote list after sign-in."""
        if not self._uses_remote(session):
            return self.load(session)

        result = {'success': False, 'error': CONFLICT}
        for attempt in range(1, self.max_sync_attempts + 1):
            remote = self.remote_store.get_items(session.user_id)
            if not remote['success']:
                logger.warning("Failed to load %s from Firebase during login: %s",
                               self.list_type, remote.get('error'))
                self.items = self.local_store.get_items()
                self._notify()
                return remote

            local_items = self.local_store.get_items()
            remote_items = remote['items']

            if local_items and remote_items:
                logger.info("Merging local and Firebase %s for %s", self.list_type, session.user_id)
                items = merge_items(local_items, remote_items)
            elif local_items:
                logger.info("Moving local %s to Firebase for %s", self.list_type, session.user_id)
                items = local_items
            else:
                items = remote_items

            if items is remote_items:
                result = {'success': True}
            else:
                result = self.remote_store.save_items(session.user_id, items,
                                                      check_version=True, version=remote.get('version'))
            if result.get('error') == CONFLICT:
                logger.warning("Conflict syncing %s for %s (attempt %d/%d)",
                               self.list_type, session.user_id, attempt, self.max_sync_attempts)
                continue

            self.items = items
            self.local_store.clear_items()
            break
        else:
            self.items = self.local_store.get_items()

        self._notify()
        result['items'] = self.items
        return result

    def on_logout(self, session: SessionContext) -> dict:
        self.items = self.local_store.get_items()
        self._notify()
        return {'success': True, 'items': self.items}

    # ---------- list operations ----------

    def add(self, session: SessionContext, item: Any, quantity: int = 1) -> dict:
        try:
            line = item.copy() if isinstance(item, LineItem) else LineItem.from_dict(item)
        except InvalidItemError as e:
            logger.error("Invalid product %r: %s", item, e)
            return {'success': False, 'error': INVALID_ITEM, 'message': str(e)}

        try:
            quantity = max(1, int(quantity))
        except (TypeError, ValueError):
            return {'success': False, 'error': INVALID_ITEM, 'message': f'Invalid quantity {quantity!r}'}
        return self._apply(session, lambda items: add_line_item(items, line, quantity))

    def remove(self, session: SessionContext, item_id: str) -> dict:
        return self._apply(session, lambda items: remove_line_item(items, str(item_id)))

    def update_quantity(self, session: SessionContext, item_id: str, new_quantity: int) -> dict:
        try:
            quantity = int(new_quantity)
        except (TypeError, ValueError):
            return {'success': False, 'error': INVALID_ITEM, 'message': f'Invalid quantity {new_quantity!r}'}
        return self._apply(session, lambda items: set_line_quantity(items, str(item_id), quantity))

    def increment(self, session: SessionContext, item_id: str) -> dict:
        return self._apply(session, lambda items: adjust_line_quantity(items, str(item_id), 1))

    def decrement(self, session: SessionContext, item_id: str) -> dict:
        return self._apply(session, lambda items: adjust_line_quantity(items, str(item_id), -1))

    def clear(self, session: SessionContext) -> dict:
        return self._apply(session, lambda items: [])

    # ---------- derived values ----------

    def get_items(self) -> List[LineItem]:
        return [it.copy() for it in self.items]

    def get_total(self) -> float:
        return sum(it.price * it.quantity for it in self.items)

    def get_item_count(self) -> int:
        return sum(it.quantity for it in self.items)

    def contains(self, item_id: str) -> bool:
        return any(it.id == str(item_id) for it in self.items)

    def summary(self) -> dict:
        return {
            'items': [it.to_dict() for it in self.items],
            'total': self.get_total(),
            'count': self.get_item_count(),
        }


class CartManager(ListManager):
    list_type = 'cart'

    def __init__(self, local_store: LocalStore, remote_store: Optional[RemoteStore] = None,
                 on_change: Optional[Callable[[ListManager], Any]] = None,
                 on_open_panel: Optional[Callable[[], Any]] = None, **kwargs):
        super().__init__(local_store, remote_store, on_change, **kwargs)
        self.on_open_panel = on_open_panel

    def add(self, session: SessionContext, item: Any, quantity: int = 1) -> dict:
        result = super().add(session, item, quantity)
        if result['success'] and self.on_open_panel is not None:
            self.on_open_panel()
        return result


class WishlistManager(ListManager):
    list_type = 'wishlist'

    def move_to_cart(self, session: SessionContext, item_id: str, cart: CartManager) -> dict:
        item = next((it for it in self.items if it.id == str(item_id)), None)
        if item is None:
            return {'success': False, 'error': 'not-in-wishlist'}

        added = cart.add(session, item, 1)
        if not added['success']:
            return added
        return self.remove(session, item.id)
