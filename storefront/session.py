from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class SessionContext:
    """Identity of the caller for a single cart/wishlist/stock call.

    ``client_id`` scopes the anonymous local storage (one per browser
    profile); ``user_id`` is set once the visitor has signed in.
    """
    client_id: str
    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def login(self, user_id: str) -> 'SessionContext':
        return replace(self, user_id=user_id)

    def logout(self) -> 'SessionContext':
        return replace(self, user_id=None)
