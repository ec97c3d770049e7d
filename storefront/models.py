from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from .errors import InvalidItemError
from .logger import get_logger
from .utils import now_iso, now_ms

logger = get_logger(__name__)

OUT_OF_STOCK = 'out_of_stock'
LOW_STOCK = 'low_stock'


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_quantity(value: Any, default: int = 1) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, quantity)


@dataclass
class LineItem:
    """One product entry in a cart or wishlist."""
    id: str
    name: str = ''
    price: float = 0.0
    image: str = ''
    quantity: int = 1
    added_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, quantity: Optional[int] = None) -> 'LineItem':
        if not isinstance(data, dict):
            raise InvalidItemError('Line item must be an object')
        item_id = data.get('id')
        if item_id is None or str(item_id).strip() == '':
            raise InvalidItemError('Line item is missing an id')

        return cls(
            id=str(item_id),
            name=str(data.get('name') or ''),
            price=_to_float(data.get('price')),
            image=str(data.get('image') or ''),
            quantity=_to_quantity(data.get('quantity', 1) if quantity is None else quantity),
            added_at=data.get('addedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'image': self.image,
            'quantity': self.quantity,
        }
        if self.added_at:
            data['addedAt'] = self.added_at
        return data

    def copy(self) -> 'LineItem':
        return LineItem(self.id, self.name, self.price, self.image, self.quantity, self.added_at)


def parse_items(raw_items: Iterable[Any]) -> List[LineItem]:
    """Build line items from stored dicts, dropping entries without an id."""
    items = []
    for raw in raw_items:
        try:
            items.append(LineItem.from_dict(raw))
        except InvalidItemError as e:
            logger.warning("Dropping stored line item %r: %s", raw, e)
    return items


def dump_items(items: Iterable[LineItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


# List operations used by the managers. Each returns a new list and leaves its
# input untouched so a failed write never corrupts the active list.

def add_line_item(items: List[LineItem], item: LineItem, quantity: int = 1) -> List[LineItem]:
    updated = [it.copy() for it in items]
    for existing in updated:
        if existing.id == item.id:
            existing.quantity += quantity
            return updated

    added = item.copy()
    added.quantity = quantity
    updated.append(added)
    return updated


def remove_line_item(items: List[LineItem], item_id: str) -> List[LineItem]:
    return [it.copy() for it in items if it.id != item_id]


def set_line_quantity(items: List[LineItem], item_id: str, quantity: int) -> List[LineItem]:
    updated = [it.copy() for it in items]
    for existing in updated:
        if existing.id == item_id:
            existing.quantity = max(1, quantity)
    return updated


def adjust_line_quantity(items: List[LineItem], item_id: str, delta: int) -> List[LineItem]:
    updated = [it.copy() for it in items]
    for existing in updated:
        if existing.id == item_id and existing.quantity + delta >= 1:
            existing.quantity += delta
    return updated


@dataclass
class CatalogItem:
    id: str
    name: str
    stock: int
    category: str
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], category: str) -> 'CatalogItem':
        try:
            stock = int(data.get('stock') or 0)
        except (TypeError, ValueError):
            stock = 0
        return cls(
            id=str(data.get('id')),
            name=str(data.get('name') or ''),
            stock=max(0, stock),
            category=category,
            updated_at=data.get('updatedAt'),
        )


@dataclass
class StockAlert:
    type: str
    products: List[Dict[str, Any]]
    id: str = field(default_factory=lambda: f"stock-alert-{now_ms()}-{uuid4().hex[:8]}")
    timestamp: str = field(default_factory=now_iso)
    read: bool = False

    @property
    def priority(self) -> str:
        return 'high' if self.type == OUT_OF_STOCK else 'medium'

    @property
    def title(self) -> str:
        return 'Products Out of Stock' if self.type == OUT_OF_STOCK else 'Low Stock Alert'

    @property
    def message(self) -> str:
        return f"{len(self.products)} product(s) require attention"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'products': self.products,
            'timestamp': self.timestamp,
            'read': self.read,
            'priority': self.priority,
        }
