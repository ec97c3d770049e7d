import threading
from collections import OrderedDict

from flask import Flask, jsonify, request
from flask_cors import CORS

from storefront.alerts import NotificationStore
from storefront.catalog import CatalogPartition
from storefront.catalog_store import ProductDataStore
from storefront.config import LOCAL_DB_PATH, PUBLIC_APP_URL, SESSION_REGISTRY_LIMIT
from storefront.context import Storefront
from storefront.errors import (
    INVALID_ITEM,
    CatalogUnavailableError,
    ConflictError,
    PartitionNotFoundError,
    StorefrontError,
)
from storefront.logger import get_logger
from storefront.session import SessionContext
from storefront.stock import StockService

logger = get_logger(__name__)

app = Flask(__name__)
CORS(app)

_services = {}
_sessions = OrderedDict()
_sessions_lock = threading.Lock()

LIST_OPERATIONS = ('add', 'remove', 'update', 'increment', 'decrement', 'clear')


def configure(firestore_client=None, bucket=None, verify_token=None, db_path=LOCAL_DB_PATH,
              session_limit=SESSION_REGISTRY_LIMIT):
    """Wire the Firebase collaborators used by the routes."""
    product_data = ProductDataStore(bucket)
    notifications = NotificationStore(bucket)
    _services.update({
        'firestore': firestore_client,
        'product_data': product_data,
        'notifications': notifications,
        'stock': StockService(product_data, notifications),
        'verify_token': verify_token,
        'db_path': db_path,
        'session_limit': max(1, session_limit),
    })
    with _sessions_lock:
        _sessions.clear()


def services() -> dict:
    if not _services:
        from storefront import firebase
        configure(firebase.get_firestore_client(), firebase.get_bucket(), firebase.verify_id_token)
    return _services


def current_user_id():
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    verify = services()['verify_token']
    if verify is None:
        return None
    return verify(header[len('Bearer '):].strip())


def get_storefront():
    client_id = (request.headers.get('X-Client-Id') or '').strip()
    if not client_id:
        return None
    config = services()
    with _sessions_lock:
        storefront = _sessions.get(client_id)
        if storefront is None:
            storefront = Storefront(client_id, config['firestore'], db_path=config['db_path'])
            _sessions[client_id] = storefront
        _sessions.move_to_end(client_id)
        # Least recently used first.
        while len(_sessions) > config['session_limit']:
            evicted, _ = _sessions.popitem(last=False)
            logger.debug("Evicted idle storefront session %s", evicted)
    return storefront


def list_response(manager, result):
    body = {'success': result.get('success', False), **manager.summary()}
    for key in ('offline', 'error', 'message'):
        if key in result:
            body[key] = result[key]
    return body


@app.route('/')
def root():
    return jsonify({'message': 'Auric storefront API running'})


# ==================== CATALOG & STOCK APIs ====================

@app.route('/api/products', methods=['GET'])
def get_products():
    category = request.args.get('category')
    if not category:
        return jsonify({
            'success': False,
            'products': [],
            'error': 'Category parameter is required',
        }), 400

    try:
        partition = services()['product_data'].load_partition(category)
    except PartitionNotFoundError as e:
        return jsonify({'success': False, 'products': [], 'error': str(e)}), 404
    except StorefrontError as e:
        logger.error("Error loading %s products: %s", category, e)
        return jsonify({'success': False, 'products': [], 'error': f'Failed to load products: {e}'}), 500

    response = jsonify({
        'success': True,
        'category': category,
        'products': partition.products,
        'version': partition.version,
        'message': f'Loaded {len(partition.products)} {category} products',
    })
    if request.args.get('cacheBust'):
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
    return response


@app.route('/api/products/stock', methods=['POST'])
def update_product_stock():
    data = request.get_json(silent=True) or {}
    category = data.get('category')
    products = data.get('products')
    product_id = data.get('productId')

    if not category or not isinstance(products, list) or not product_id:
        return jsonify({
            'success': False,
            'error': 'Missing required fields: category, products, productId',
        }), 400

    partition = CatalogPartition(category, products, data.get('expectedVersion'))
    try:
        result = services()['product_data'].save_partition(
            partition,
            product_id,
            data.get('previousStock'),
            data.get('newStock'),
            data.get('quantityReduced'),
        )
        return jsonify(result)
    except ConflictError as e:
        return jsonify({'success': False, 'error': str(e)}), 409
    except PartitionNotFoundError as e:
        return jsonify({'success': False, 'error': str(e)}), 404
    except CatalogUnavailableError as e:
        logger.error("Error updating product stock: %s", e)
        return jsonify({'success': False, 'error': f'Failed to update product stock: {e}'}), 500


@app.route('/api/stock/availability', methods=['GET'])
def check_stock_availability():
    product_id = request.args.get('productId')
    if not product_id:
        return jsonify({'success': False, 'message': 'productId is required'}), 400
    try:
        quantity = int(request.args.get('quantity', 1))
    except ValueError:
        return jsonify({'success': False, 'message': 'quantity must be a whole number'}), 400

    result = services()['stock'].check_availability(product_id, quantity)
    return jsonify({'success': 'error' not in result, **result})


@app.route('/api/orders/stock', methods=['POST'])
def update_stock_after_order():
    data = request.get_json(silent=True) or {}
    items = data.get('items')
    if not isinstance(items, list) or not items:
        return jsonify({'success': False, 'message': 'Order items are required'}), 400

    try:
        result = services()['stock'].update_stock_after_order(
            [item for item in items if isinstance(item, dict)])
        return jsonify(result)
    except Exception as e:
        logger.exception("Error in update_stock_after_order: %s", e)
        return jsonify({'success': False, 'error': str(e)}), 500


# ==================== ADMIN NOTIFICATION APIs ====================

@app.route('/api/admin/notifications', methods=['GET'])
def get_notifications():
    try:
        notifications = services()['notifications'].list()
        return jsonify({'success': True, 'notifications': notifications})
    except StorefrontError as e:
        logger.error("Error getting notifications: %s", e)
        return jsonify({'success': False, 'error': str(e), 'notifications': []}), 500


@app.route('/api/admin/notifications', methods=['POST'])
def handle_notification_action():
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    try:
        notifications = services()['notifications'].perform(
            action,
            notification=data.get('notification'),
            notification_id=data.get('notificationId'),
        )
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except StorefrontError as e:
        logger.error("Error handling notification action %s: %s", action, e)
        return jsonify({'success': False, 'error': str(e)}), 500

    return jsonify({
        'success': True,
        'message': f'Successfully performed action: {action}',
        'notifications': notifications,
    })


# ==================== CART & WISHLIST APIs ====================

@app.route('/api/session/login', methods=['POST'])
def session_login():
    storefront = get_storefront()
    if storefront is None:
        return jsonify({'success': False, 'message': 'X-Client-Id header is required'}), 400

    user_id = current_user_id()
    if not user_id:
        return jsonify({'success': False, 'message': 'A valid Firebase ID token is required'}), 401

    results = storefront.login(user_id)
    return jsonify({
        'success': all(r.get('success') for r in results.values()),
        'cart': list_response(storefront.cart, results['cart']),
        'wishlist': list_response(storefront.wishlist, results['wishlist']),
    })


@app.route('/api/session/logout', methods=['POST'])
def session_logout():
    storefront = get_storefront()
    if storefront is None:
        return jsonify({'success': False, 'message': 'X-Client-Id header is required'}), 400

    results = storefront.logout()
    return jsonify({
        'success': True,
        'cart': list_response(storefront.cart, results['cart']),
        'wishlist': list_response(storefront.wishlist, results['wishlist']),
    })


def request_session(storefront):
    return SessionContext(client_id=storefront.session.client_id, user_id=current_user_id())


@app.route('/api/<any(cart, wishlist):list_type>', methods=['GET'])
def get_list(list_type):
    storefront = get_storefront()
    if storefront is None:
        return jsonify({'success': False, 'message': 'X-Client-Id header is required'}), 400

    manager = storefront.manager(list_type)
    result = manager.load(request_session(storefront))
    return jsonify(list_response(manager, result))


@app.route('/api/<any(cart, wishlist):list_type>/<operation>', methods=['POST'])
def change_list(list_type, operation):
    storefront = get_storefront()
    if storefront is None:
        return jsonify({'success': False, 'message': 'X-Client-Id header is required'}), 400
    if operation not in LIST_OPERATIONS:
        return jsonify({'success': False, 'message': f'Unknown operation: {operation}'}), 404

    data = request.get_json(silent=True) or {}
    manager = storefront.manager(list_type)
    session = request_session(storefront)
    item_id = data.get('id')

    if operation == 'add':
        result = manager.add(session, data.get('item'), data.get('quantity', 1))
    elif operation == 'clear':
        result = manager.clear(session)
    elif not item_id:
        return jsonify({'success': False, 'message': 'Item id is required'}), 400
    elif operation == 'remove':
        result = manager.remove(session, item_id)
    elif operation == 'update':
        result = manager.update_quantity(session, item_id, data.get('quantity', 1))
    elif operation == 'increment':
        result = manager.increment(session, item_id)
    else:
        result = manager.decrement(session, item_id)

    status = 400 if result.get('error') == INVALID_ITEM else 200
    return jsonify(list_response(manager, result)), status


@app.route('/api/wishlist/move-to-cart', methods=['POST'])
def move_wishlist_item_to_cart():
    storefront = get_storefront()
    if storefront is None:
        return jsonify({'success': False, 'message': 'X-Client-Id header is required'}), 400

    item_id = (request.get_json(silent=True) or {}).get('id')
    if not item_id:
        return jsonify({'success': False, 'message': 'Item id is required'}), 400

    session = request_session(storefront)
    storefront.wishlist.load(session)
    result = storefront.wishlist.move_to_cart(session, item_id, storefront.cart)
    return jsonify({
        'success': result.get('success', False),
        'error': result.get('error'),
        'cart': storefront.cart.summary(),
        'wishlist': storefront.wishlist.summary(),
    })


if __name__ == '__main__':
    logger.info("Starting Flask server on %s", PUBLIC_APP_URL)
    app.run(debug=True, port=5000)
