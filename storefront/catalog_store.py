import json

from google.api_core import exceptions as google_exceptions

from .catalog import CATEGORIES, CatalogPartition
from .errors import CatalogUnavailableError, ConflictError, PartitionNotFoundError
from .logger import get_logger
from .utils import now_iso, now_ms

logger = get_logger(__name__)

PRODUCT_CACHE_CONTROL = 'public, max-age=2592000'


def product_data_path(category: str) -> str:
    return f'productData/{category}-products.json'


class ProductDataStore:
    """
    Catalog partitions kept as JSON files in the Firebase Storage bucket,
    one ``productData/<category>-products.json`` file per category.

    The partition version is the blob generation; writes carrying a version
    only succeed if the file has not been replaced since it was read.
    """

    def __init__(self, bucket):
        self.bucket = bucket

    def load_partition(self, category: str) -> CatalogPartition:
        if category not in CATEGORIES:
            raise PartitionNotFoundError(f"Unknown category {category}")

        try:
            blob = self.bucket.get_blob(product_data_path(category))
            if blob is None:
                logger.info("No %s products file found in Firebase Storage", category)
                # Generation 0 means "must not exist yet" for the next write.
                return CatalogPartition(category, [], 0)
            raw = blob.download_as_text()
        except google_exceptions.GoogleAPIError as e:
            raise CatalogUnavailableError(f"Failed to fetch {category} from Firebase Storage: {e}") from e

        try:
            products = json.loads(raw)
        except ValueError as e:
            raise CatalogUnavailableError(f"Invalid JSON in {category} products file") from e

        if not isinstance(products, list):
            products = []
        return CatalogPartition(category, products, blob.generation)

    def save_partition(self, partition: CatalogPartition, product_id: str,
                       previous_stock: int, new_stock: int, quantity_reduced: int) -> dict:
        if partition.category not in CATEGORIES:
            raise PartitionNotFoundError(f"Unknown category {partition.category}")

        blob = self.bucket.blob(product_data_path(partition.category))
        blob.cache_control = PRODUCT_CACHE_CONTROL
        blob.metadata = {
            'lastStockUpdate': now_iso(),
            'updatedProduct': product_id,
            'stockChange': f'{previous_stock}->{new_stock}',
        }

        try:
            blob.upload_from_string(
                json.dumps(partition.products, indent=2),
                content_type='application/json',
                if_generation_match=partition.version,
            )
        except google_exceptions.PreconditionFailed as e:
            raise ConflictError(f"{partition.category} changed since it was read") from e
        except google_exceptions.GoogleAPIError as e:
            raise CatalogUnavailableError(f"Failed to update product stock: {e}") from e

        logger.info("Updated %s products file: %s %s -> %s",
                    partition.category, product_id, previous_stock, new_stock)
        self._write_audit_log(partition.category, product_id, previous_stock, new_stock, quantity_reduced)

        return {
            'success': True,
            'message': f'Stock updated successfully for product {product_id}',
            'productId': product_id,
            'previousStock': previous_stock,
            'newStock': new_stock,
            'quantityReduced': quantity_reduced,
            'version': blob.generation,
            'timestamp': now_iso(),
        }

    def _write_audit_log(self, category, product_id, previous_stock, new_stock, quantity_reduced) -> None:
        audit_log = {
            'timestamp': now_iso(),
            'action': 'stock_update',
            'productId': product_id,
            'category': category,
            'previousStock': previous_stock,
            'newStock': new_stock,
            'quantityReduced': quantity_reduced,
            'source': 'order_placement',
        }
        try:
            audit_blob = self.bucket.blob(f'stockLogs/stock-update-{now_ms()}-{product_id}.json')
            audit_blob.upload_from_string(json.dumps(audit_log, indent=2), content_type='application/json')
        except google_exceptions.GoogleAPIError as e:
            # The stock change itself already landed.
            logger.error("Error saving stock audit log for %s: %s", product_id, e)
