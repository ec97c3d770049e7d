"""
Stock bookkeeping run after an order is paid.

Every ordered item is handled on its own: its category file is read, the
product's stock lowered (never below zero) and the whole file written back.
One item failing never undoes or blocks the others. After the batch, at most
one out-of-stock and one low-stock alert is raised for the admin dashboard.
"""
from typing import Any, Dict, Iterable, List

from .catalog import CATEGORIES, find_product_index, resolve_partition
from .config import LOW_STOCK_THRESHOLD, OUT_OF_STOCK_THRESHOLD, STOCK_MAX_RETRIES
from .errors import (
    CONFLICT,
    INVALID_ITEM,
    PRODUCT_NOT_FOUND,
    UNEXPECTED,
    ConflictError,
    ProductNotFoundError,
    StorefrontError,
)
from .logger import get_logger
from .models import LOW_STOCK, OUT_OF_STOCK, CatalogItem, StockAlert
from .utils import now_iso

logger = get_logger(__name__)


def _stock_of(product: Dict[str, Any]) -> int:
    try:
        return max(0, int(product.get('stock') or 0))
    except (TypeError, ValueError):
        return 0


class StockService:
    """
    ``catalog`` provides ``load_partition(category)`` and
    ``save_partition(partition, product_id, previous_stock, new_stock,
    quantity_reduced)``; ``alerts`` provides ``add(alert)``.
    """

    def __init__(self, catalog, alerts=None, max_retries: int = STOCK_MAX_RETRIES,
                 low_stock_threshold: int = LOW_STOCK_THRESHOLD):
        self.catalog = catalog
        self.alerts = alerts
        self.max_retries = max(1, max_retries)
        self.low_stock_threshold = low_stock_threshold

    def update_product_stock(self, product_id: str, quantity: int) -> dict:
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            quantity = 0
        if not product_id or quantity < 1:
            return {'success': False, 'error': INVALID_ITEM,
                    'message': f'Invalid stock request for {product_id!r} x {quantity}'}

        category = resolve_partition(product_id)

        for attempt in range(1, self.max_retries + 1):
            try:
                partition = self.catalog.load_partition(category)
                index = find_product_index(partition.products, product_id)
                if index is None:
                    raise ProductNotFoundError(f'Product {product_id} not found in category {category}')

                product = partition.products[index]
                previous_stock = _stock_of(product)
                new_stock = max(0, previous_stock - quantity)
                logger.info("Product %s: %d -> %d (reduced by %d)", product_id, previous_stock, new_stock, quantity)

                product['stock'] = new_stock
                product['updatedAt'] = now_iso()

                self.catalog.save_partition(partition, product_id, previous_stock, new_stock, quantity)
                return {
                    'success': True,
                    'category': category,
                    'previousStock': previous_stock,
                    'newStock': new_stock,
                    'quantityReduced': quantity,
                    'attempts': attempt,
                }
            except ConflictError as e:
                logger.warning("Stock update conflict for %s (attempt %d/%d): %s",
                               product_id, attempt, self.max_retries, e)
            except StorefrontError as e:
                logger.error("Error updating stock for product %s: %s", product_id, e)
                result = e.to_result()
                result['category'] = category
                return result

        return {'success': False, 'error': CONFLICT, 'category': category,
                'message': f'Stock for {product_id} kept changing, gave up after {self.max_retries} attempts'}

    def update_stock_after_order(self, order_items: Iterable[Dict[str, Any]]) -> dict:
        updates = []
        failures = []
        out_of_stock = []
        low_stock = []

        for item in order_items:
            product_id = str(item.get('id') or '')
            quantity = item.get('quantity', 1)
            name = item.get('name', '')

            try:
                result = self.update_product_stock(product_id, quantity)
            except Exception as e:
                logger.exception("Unexpected error updating stock for product %s", product_id)
                result = {'success': False, 'error': UNEXPECTED, 'message': str(e)}

            if not result['success']:
                logger.error("Failed to update stock for product %s: %s", product_id, result.get('error'))
                failures.append({'productId': product_id, 'productName': name, **result})
                continue

            new_stock = result['newStock']
            updates.append({
                'productId': product_id,
                'productName': name,
                'previousStock': result['previousStock'],
                'newStock': new_stock,
                'quantity': result['quantityReduced'],
            })

            if new_stock <= OUT_OF_STOCK_THRESHOLD:
                out_of_stock.append({'id': product_id, 'name': name, 'stock': new_stock})
            elif new_stock <= self.low_stock_threshold:
                low_stock.append({'id': product_id, 'name': name, 'stock': new_stock})

        alerts = []
        if out_of_stock:
            alerts.append(self.send_stock_alert(OUT_OF_STOCK, out_of_stock))
        if low_stock:
            alerts.append(self.send_stock_alert(LOW_STOCK, low_stock))

        logger.info("Stock updates completed: %d updated, %d failed", len(updates), len(failures))
        return {
            'success': True,
            'updates': updates,
            'failures': failures,
            'outOfStockProducts': out_of_stock,
            'lowStockProducts': low_stock,
            'alerts': [alert.to_dict() for alert in alerts],
        }

    def send_stock_alert(self, alert_type: str, products: List[Dict[str, Any]]) -> StockAlert:
        alert = StockAlert(type=alert_type, products=products)
        if self.alerts is None:
            return alert

        try:
            self.alerts.add(alert)
            logger.info("%s notification sent for %d product(s)", alert_type, len(products))
        except StorefrontError as e:
            logger.error("Error sending %s notification: %s", alert_type, e)
        return alert

    def check_availability(self, product_id: str, requested_quantity: int) -> dict:
        category = resolve_partition(product_id)
        try:
            partition = self.catalog.load_partition(category)
        except StorefrontError as e:
            logger.error("Error checking availability for product %s: %s", product_id, e)
            return {'available': False, 'error': e.code, 'message': str(e), 'stock': 0}

        index = find_product_index(partition.products, product_id)
        if index is None:
            return {'available': False, 'error': PRODUCT_NOT_FOUND, 'stock': 0}

        product = CatalogItem.from_dict(partition.products[index], category)
        return {
            'available': product.stock >= requested_quantity,
            'stock': product.stock,
            'requestedQuantity': requested_quantity,
            'productName': product.name,
        }

    def _products_matching(self, predicate) -> List[Dict[str, Any]]:
        matches = []
        for category in CATEGORIES:
            try:
                partition = self.catalog.load_partition(category)
            except StorefrontError as e:
                logger.error("Skipping %s while scanning stock: %s", category, e)
                continue
            for product in partition.products:
                if not isinstance(product, dict):
                    continue
                stock = _stock_of(product)
                if predicate(stock):
                    matches.append({**product, 'category': category, 'stock': stock})
        return matches

    def get_out_of_stock_products(self) -> List[Dict[str, Any]]:
        return self._products_matching(lambda stock: stock <= OUT_OF_STOCK_THRESHOLD)

    def get_low_stock_products(self) -> List[Dict[str, Any]]:
        return self._products_matching(
            lambda stock: OUT_OF_STOCK_THRESHOLD < stock <= self.low_stock_threshold)
