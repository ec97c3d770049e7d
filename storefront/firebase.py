from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore, storage

from .config import FIREBASE_CONFIG_PATH, FIREBASE_STORAGE_BUCKET
from .logger import get_logger

logger = get_logger(__name__)


def init_firebase(config_path: str = FIREBASE_CONFIG_PATH):
    """Initialise the default Firebase Admin app once and return it."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    firebase_credentials = credentials.Certificate(config_path)
    return firebase_admin.initialize_app(firebase_credentials, {'storageBucket': FIREBASE_STORAGE_BUCKET})


def get_firestore_client():
    init_firebase()
    return firestore.client()


def get_bucket():
    init_firebase()
    return storage.bucket()


def verify_id_token(id_token: str) -> Optional[str]:
    """Return the uid for a Firebase ID token, or None when it is not valid."""
    if not id_token:
        return None
    try:
        decoded = firebase_auth.verify_id_token(id_token)
    except (firebase_auth.InvalidIdTokenError, firebase_auth.CertificateFetchError, ValueError) as e:
        logger.warning("Rejected Firebase ID token: %s", e)
        return None
    return decoded.get('uid')
