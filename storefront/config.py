import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Firebase
FIREBASE_CONFIG_PATH = os.getenv('FIREBASE_CONFIG_PATH', os.path.join(BASE_DIR, 'firebase_config.json'))
FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET', 'auric-a0c92.firebasestorage.app')

# Client-side storage
LOCAL_DB_PATH = os.getenv('STOREFRONT_DB_PATH', os.path.join(BASE_DIR, 'storefront.db'))
CART_STORAGE_KEY = 'auric_cart_items'
WISHLIST_STORAGE_KEY = 'auric_wishlist_items'
SESSION_CACHE_TTL_SECONDS = float(os.getenv('SESSION_CACHE_TTL_SECONDS', '1800'))
SESSION_REGISTRY_LIMIT = int(os.getenv('SESSION_REGISTRY_LIMIT', '1000'))

# Remote cart/wishlist documents
REMOTE_TIMEOUT_SECONDS = float(os.getenv('REMOTE_TIMEOUT_SECONDS', '5'))
REMOTE_MAX_RETRIES = int(os.getenv('REMOTE_MAX_RETRIES', '3'))

# Catalog and stock
CATALOG_BASE_URL = os.getenv('CATALOG_BASE_URL', 'http://localhost:5000').rstrip('/')
CATALOG_TIMEOUT_SECONDS = float(os.getenv('CATALOG_TIMEOUT_SECONDS', '10'))
STOCK_MAX_RETRIES = int(os.getenv('STOCK_MAX_RETRIES', '3'))
LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '5'))
OUT_OF_STOCK_THRESHOLD = 0
ALERT_LOG_LIMIT = 100

PUBLIC_APP_URL = os.getenv('PUBLIC_APP_URL', 'http://localhost:5000').rstrip('/')

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
# Empty keeps logs on stdout only; relative paths resolve against BASE_DIR.
LOG_FILE = os.getenv('LOG_FILE', '')
LOG_MAX_BYTES = int(os.getenv('LOG_MAX_BYTES', str(5 * 1024 * 1024)))
LOG_BACKUPS = int(os.getenv('LOG_BACKUPS', '5'))
# Firebase and HTTP client libraries log every request at INFO.
QUIET_LOGGERS = ('urllib3', 'google', 'google.auth')
