from typing import Dict, List

from .models import LineItem


def merge_items(list_a: List[LineItem], list_b: List[LineItem]) -> List[LineItem]:
    """
    Reconcile two line-item lists into one.

    - Items of ``list_a`` keep their original order.
    - Ids only present in ``list_b`` are appended in ``list_b``'s order.
    - For ids present in both, ``list_b``'s name/price/image win and the
      quantity is the larger of the two.

    Neither input is modified.
    """
    merged: Dict[str, LineItem] = {}

    for item in list_a:
        merged[item.id] = item.copy()

    for item in list_b:
        existing = merged.get(item.id)
        incoming = item.copy()
        if existing is not None:
            incoming.quantity = max(existing.quantity, item.quantity)
        merged[item.id] = incoming

    return list(merged.values())
