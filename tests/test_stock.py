import pytest
from google.api_core import exceptions as google_exceptions

from conftest import FakeHttpSession, FakeResponse
from storefront.alerts import NOTIFICATIONS_PATH, NotificationStore
from storefront.catalog import CatalogClient, resolve_partition
from storefront.catalog_store import ProductDataStore, product_data_path
from storefront.errors import CatalogUnavailableError, ConflictError, PartitionNotFoundError
from storefront.stock import StockService

FEATURED = product_data_path('featured-collection')
NEW_ARRIVALS = product_data_path('new-arrivals')
SAREES = product_data_path('saree-collection')


@pytest.fixture
def catalog_bucket(bucket):
    bucket.put_json(FEATURED, [
        {'id': 'FEA-1', 'name': 'Gold Ring', 'stock': 10},
        {'id': 'FEA-2', 'name': 'Silver Anklet', 'stock': 0},
    ])
    bucket.put_json(NEW_ARRIVALS, [
        {'id': 'NEW-1', 'name': 'Pearl Necklace', 'stock': 4},
        {'id': 'LEGACY-9', 'name': 'Old Brooch', 'stock': 2},
    ])
    bucket.put_json(SAREES, [{'id': 'SAR-1', 'name': 'Silk Saree', 'stock': 30}])
    return bucket


@pytest.fixture
def service(catalog_bucket):
    return StockService(ProductDataStore(catalog_bucket), NotificationStore(catalog_bucket))


def stock_of(bucket, path, product_id):
    return next(p['stock'] for p in bucket.read_json(path) if isinstance(p, dict) and p['id'] == product_id)


def test_resolve_partition_by_prefix():
    assert resolve_partition('FEA-12') == 'featured-collection'
    assert resolve_partition('NEW-3') == 'new-arrivals'
    assert resolve_partition('SAR-7') == 'saree-collection'
    assert resolve_partition('XYZ-1') == 'new-arrivals'


def test_update_product_stock(service, catalog_bucket):
    result = service.update_product_stock('FEA-1', 3)

    assert result['success'] is True
    assert (result['previousStock'], result['newStock']) == (10, 7)
    assert stock_of(catalog_bucket, FEATURED, 'FEA-1') == 7
    updated = next(p for p in catalog_bucket.read_json(FEATURED) if p['id'] == 'FEA-1')
    assert 'updatedAt' in updated
    assert catalog_bucket.files[FEATURED]['metadata']['stockChange'] == '10->7'
    assert any(name.startswith('stockLogs/stock-update-') for name in catalog_bucket.files)


def test_stock_never_goes_below_zero(service, catalog_bucket):
    result = service.update_product_stock('SAR-1', 50)
    assert result['newStock'] == 0
    assert stock_of(catalog_bucket, SAREES, 'SAR-1') == 0


def test_unknown_prefix_uses_default_partition(service, catalog_bucket):
    result = service.update_product_stock('LEGACY-9', 1)
    assert result['category'] == 'new-arrivals'
    assert stock_of(catalog_bucket, NEW_ARRIVALS, 'LEGACY-9') == 1


def test_missing_product(service):
    result = service.update_product_stock('FEA-404', 1)
    assert result['success'] is False
    assert result['error'] == 'product-not-found'


def test_invalid_quantity(service):
    assert service.update_product_stock('FEA-1', 0)['error'] == 'invalid-item'


def test_concurrent_write_is_retried_on_fresh_data(service, catalog_bucket):
    catalog_bucket.interleave.append(
        lambda b: b.put_json(FEATURED, [{'id': 'FEA-1', 'name': 'Gold Ring', 'stock': 8}]))

    result = service.update_product_stock('FEA-1', 3)

    assert result['success'] is True
    assert result['attempts'] == 2
    assert (result['previousStock'], result['newStock']) == (8, 5)
    assert stock_of(catalog_bucket, FEATURED, 'FEA-1') == 5


def test_gives_up_after_repeated_conflicts(catalog_bucket):
    service = StockService(ProductDataStore(catalog_bucket), max_retries=2)
    catalog_bucket.interleave.extend([
        lambda b: b.put_json(FEATURED, [{'id': 'FEA-1', 'stock': 9}]),
        lambda b: b.put_json(FEATURED, [{'id': 'FEA-1', 'stock': 8}]),
    ])

    result = service.update_product_stock('FEA-1', 1)

    assert result['success'] is False
    assert result['error'] == 'conflict'
    assert stock_of(catalog_bucket, FEATURED, 'FEA-1') == 8


def test_storage_failure_is_reported(service, catalog_bucket):
    catalog_bucket.fail_with = google_exceptions.ServiceUnavailable('storage down')
    result = service.update_product_stock('FEA-1', 1)
    assert result['success'] is False
    assert result['error'] == 'catalog-unavailable'


def test_order_batch_updates_each_item_and_raises_alerts(service, catalog_bucket):
    result = service.update_stock_after_order([
        {'id': 'FEA-1', 'name': 'Gold Ring', 'quantity': 10},
        {'id': 'NEW-1', 'name': 'Pearl Necklace', 'quantity': 1},
        {'id': 'SAR-404', 'name': 'Ghost Saree', 'quantity': 1},
        {'id': 'SAR-1', 'name': 'Silk Saree', 'quantity': 2},
    ])

    assert result['success'] is True
    assert [u['productId'] for u in result['updates']] == ['FEA-1', 'NEW-1', 'SAR-1']
    assert [f['productId'] for f in result['failures']] == ['SAR-404']
    assert result['failures'][0]['error'] == 'product-not-found'
    assert result['outOfStockProducts'] == [{'id': 'FEA-1', 'name': 'Gold Ring', 'stock': 0}]
    assert result['lowStockProducts'] == [{'id': 'NEW-1', 'name': 'Pearl Necklace', 'stock': 3}]

    notifications = catalog_bucket.read_json(NOTIFICATIONS_PATH)
    assert sorted(n['type'] for n in notifications) == ['low_stock', 'out_of_stock']
    priorities = {n['type']: n['priority'] for n in notifications}
    assert priorities == {'out_of_stock': 'high', 'low_stock': 'medium'}


def test_malformed_catalog_entry_does_not_abort_order(bucket):
    bucket.put_json(FEATURED, [None, {'id': 'FEA-1', 'name': 'Gold Ring', 'stock': 5}])
    bucket.put_json(SAREES, [{'id': 'SAR-1', 'name': 'Silk Saree', 'stock': 30}])
    service = StockService(ProductDataStore(bucket))

    result = service.update_stock_after_order([
        {'id': 'FEA-1', 'name': 'Gold Ring', 'quantity': 1},
        {'id': 'SAR-1', 'name': 'Silk Saree', 'quantity': 1},
    ])

    assert [u['productId'] for u in result['updates']] == ['FEA-1', 'SAR-1']
    assert result['failures'] == []
    assert stock_of(bucket, FEATURED, 'FEA-1') == 4
    assert stock_of(bucket, SAREES, 'SAR-1') == 29


def test_unexpected_error_is_recorded_per_item(catalog_bucket):
    class FlakyProductData(ProductDataStore):
        def load_partition(self, category):
            if category == 'featured-collection':
                raise RuntimeError('socket closed')
            return super().load_partition(category)

    service = StockService(FlakyProductData(catalog_bucket))
    result = service.update_stock_after_order([
        {'id': 'FEA-1', 'name': 'Gold Ring', 'quantity': 1},
        {'id': 'SAR-1', 'name': 'Silk Saree', 'quantity': 2},
    ])

    assert result['success'] is True
    assert [(f['productId'], f['error']) for f in result['failures']] == [('FEA-1', 'unexpected-error')]
    assert [u['productId'] for u in result['updates']] == ['SAR-1']
    assert stock_of(catalog_bucket, SAREES, 'SAR-1') == 28
    assert stock_of(catalog_bucket, FEATURED, 'FEA-1') == 10


def test_alerts_from_one_order_have_distinct_ids(service, catalog_bucket):
    result = service.update_stock_after_order([
        {'id': 'FEA-1', 'name': 'Gold Ring', 'quantity': 10},
        {'id': 'NEW-1', 'name': 'Pearl Necklace', 'quantity': 1},
    ])

    alert_ids = [alert['id'] for alert in result['alerts']]
    assert len(alert_ids) == 2
    assert len(set(alert_ids)) == 2

    log = NotificationStore(catalog_bucket).perform('mark_read', notification_id=alert_ids[0])
    assert {n['id']: n['read'] for n in log} == {alert_ids[0]: True, alert_ids[1]: False}


def test_order_batch_without_thresholds_crossed_sends_no_alert(service, catalog_bucket):
    result = service.update_stock_after_order([{'id': 'SAR-1', 'name': 'Silk Saree', 'quantity': 1}])

    assert result['alerts'] == []
    assert NOTIFICATIONS_PATH not in catalog_bucket.files


def test_alert_failure_does_not_fail_order(catalog_bucket):
    class BrokenAlerts:
        def add(self, alert):
            raise CatalogUnavailableError('notifications offline')

    service = StockService(ProductDataStore(catalog_bucket), BrokenAlerts())
    result = service.update_stock_after_order([{'id': 'FEA-1', 'name': 'Gold Ring', 'quantity': 10}])

    assert result['success'] is True
    assert result['updates'][0]['newStock'] == 0
    assert result['alerts'][0]['type'] == 'out_of_stock'


def test_check_availability(service):
    assert service.check_availability('FEA-1', 5) == {
        'available': True, 'stock': 10, 'requestedQuantity': 5, 'productName': 'Gold Ring',
    }
    assert service.check_availability('FEA-1', 11)['available'] is False
    assert service.check_availability('FEA-999', 1) == {
        'available': False, 'error': 'product-not-found', 'stock': 0,
    }


def test_stock_reports_across_partitions(service):
    assert [p['id'] for p in service.get_out_of_stock_products()] == ['FEA-2']
    assert sorted(p['id'] for p in service.get_low_stock_products()) == ['LEGACY-9', 'NEW-1']


def test_missing_partition_file_reads_as_empty(bucket):
    partition = ProductDataStore(bucket).load_partition('saree-collection')
    assert partition.products == []
    assert partition.version == 0

    with pytest.raises(PartitionNotFoundError):
        ProductDataStore(bucket).load_partition('bangles')


# ---------- HTTP catalog client ----------

def test_catalog_client_load_partition():
    http = FakeHttpSession(FakeResponse(200, {'success': True, 'products': [{'id': 'FEA-1'}], 'version': 7}))
    client = CatalogClient('http://shop.test/', session=http)

    partition = client.load_partition('featured-collection')

    assert partition.products == [{'id': 'FEA-1'}]
    assert partition.version == 7
    method, url, kwargs = http.calls[0]
    assert (method, url) == ('GET', 'http://shop.test/api/products')
    assert kwargs['params']['category'] == 'featured-collection'
    assert 'cacheBust' in kwargs['params']


def test_catalog_client_errors(connection_error):
    client = CatalogClient('http://shop.test', session=FakeHttpSession(FakeResponse(404)))
    with pytest.raises(PartitionNotFoundError):
        client.load_partition('bangles')

    client = CatalogClient('http://shop.test', session=FakeHttpSession(connection_error))
    with pytest.raises(CatalogUnavailableError):
        client.load_partition('featured-collection')

    client = CatalogClient('http://shop.test', session=FakeHttpSession(FakeResponse(409)))
    with pytest.raises(ConflictError):
        client.save_partition(client_partition(), 'FEA-1', 10, 9, 1)


def client_partition():
    from storefront.catalog import CatalogPartition
    return CatalogPartition('featured-collection', [{'id': 'FEA-1', 'stock': 9}], 3)


def test_stock_service_over_http_retries_conflict():
    listing = {'success': True, 'products': [{'id': 'FEA-1', 'name': 'Gold Ring', 'stock': 10}], 'version': 3}
    http = FakeHttpSession(
        FakeResponse(200, listing),
        FakeResponse(409, {'success': False}),
        FakeResponse(200, dict(listing, version=4)),
        FakeResponse(200, {'success': True}),
    )
    service = StockService(CatalogClient('http://shop.test', session=http))

    result = service.update_product_stock('FEA-1', 2)

    assert result['success'] is True
    assert result['attempts'] == 2
    posted = [kwargs['json'] for method, _, kwargs in http.calls if method == 'POST']
    assert [p['expectedVersion'] for p in posted] == [3, 4]
    assert posted[-1]['newStock'] == 8
