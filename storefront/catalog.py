from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .config import CATALOG_BASE_URL, CATALOG_TIMEOUT_SECONDS
from .errors import CatalogUnavailableError, ConflictError, PartitionNotFoundError
from .logger import get_logger
from .utils import now_ms

logger = get_logger(__name__)

PARTITION_PREFIXES = {
    'FEA-': 'featured-collection',
    'NEW-': 'new-arrivals',
    'SAR-': 'saree-collection',
}
DEFAULT_PARTITION = 'new-arrivals'
CATEGORIES = list(PARTITION_PREFIXES.values())


def resolve_partition(product_id: str) -> str:
    """Map a product id to its catalog category by id prefix."""
    for prefix, category in PARTITION_PREFIXES.items():
        if product_id.startswith(prefix):
            return category

    logger.warning("Unknown product ID pattern: %s, defaulting to %s", product_id, DEFAULT_PARTITION)
    return DEFAULT_PARTITION


def find_product_index(products: List[Dict[str, Any]], product_id: str) -> Optional[int]:
    for index, product in enumerate(products):
        if isinstance(product, dict) and str(product.get('id')) == product_id:
            return index
    return None


@dataclass
class CatalogPartition:
    """All products of one category plus the version they were read at."""
    category: str
    products: List[Dict[str, Any]] = field(default_factory=list)
    version: Optional[Any] = None


class CatalogClient:
    """HTTP access to the catalog endpoints (``GET ?category=`` / ``POST`` stock update)."""

    def __init__(self, base_url: str = CATALOG_BASE_URL, session: Optional[requests.Session] = None,
                 timeout: float = CATALOG_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.http = session if session is not None else requests.Session()
        self.timeout = timeout

    def load_partition(self, category: str) -> CatalogPartition:
        try:
            response = self.http.get(
                f'{self.base_url}/api/products',
                params={'category': category, 'cacheBust': now_ms()},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise CatalogUnavailableError(f"Failed to load {category} products: {e}") from e

        if response.status_code == 404:
            raise PartitionNotFoundError(f"Catalog partition {category} not found")
        if response.status_code != 200:
            raise CatalogUnavailableError(f"Failed to load products: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogUnavailableError(f"Invalid catalog response for {category}") from e

        products = data.get('products')
        if not isinstance(products, list):
            products = []
        return CatalogPartition(category, products, data.get('version'))

    def save_partition(self, partition: CatalogPartition, product_id: str,
                       previous_stock: int, new_stock: int, quantity_reduced: int) -> dict:
        payload = {
            'category': partition.category,
            'products': partition.products,
            'productId': product_id,
            'previousStock': previous_stock,
            'newStock': new_stock,
            'quantityReduced': quantity_reduced,
            'expectedVersion': partition.version,
        }
        try:
            response = self.http.post(f'{self.base_url}/api/products/stock', json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CatalogUnavailableError(f"Failed to update product stock: {e}") from e

        if response.status_code == 409:
            raise ConflictError(f"{partition.category} changed since it was read")
        if response.status_code == 404:
            raise PartitionNotFoundError(f"Catalog partition {partition.category} not found")
        if response.status_code != 200:
            raise CatalogUnavailableError(f"Failed to update product stock: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogUnavailableError("Invalid stock update response") from e

        if not data.get('success'):
            raise CatalogUnavailableError(data.get('error') or 'Unknown error updating stock')
        return data
