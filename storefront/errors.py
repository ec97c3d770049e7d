"""Error codes shared by the cart, wishlist and stock modules.

Public operations report failures as ``{'success': False, 'error': <code>}``
dicts. The exception classes below are raised internally and converted to
those dicts at module boundaries.
"""

NOT_LOGGED_IN = 'not-logged-in'
OFFLINE = 'offline'
PRODUCT_NOT_FOUND = 'product-not-found'
PARTITION_NOT_FOUND = 'partition-not-found'
INVALID_ITEM = 'invalid-item'
PARSE_FAILURE = 'parse-failure'
CONFLICT = 'conflict'
CATALOG_UNAVAILABLE = 'catalog-unavailable'
UNEXPECTED = 'unexpected-error'


class StorefrontError(Exception):
    code = 'error'

    def to_result(self) -> dict:
        return {'success': False, 'error': self.code, 'message': str(self)}


class InvalidItemError(StorefrontError):
    code = INVALID_ITEM


class ConflictError(StorefrontError):
    code = CONFLICT


class ProductNotFoundError(StorefrontError):
    code = PRODUCT_NOT_FOUND


class PartitionNotFoundError(StorefrontError):
    code = PARTITION_NOT_FOUND


class CatalogUnavailableError(StorefrontError):
    code = CATALOG_UNAVAILABLE
