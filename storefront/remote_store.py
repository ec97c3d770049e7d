from typing import Callable, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from .cache import SessionCache
from .config import REMOTE_MAX_RETRIES, REMOTE_TIMEOUT_SECONDS
from .errors import CONFLICT, NOT_LOGGED_IN, OFFLINE, ConflictError
from .logger import get_logger
from .models import LineItem, dump_items, parse_items
from .utils import run_with_timeout

logger = get_logger(__name__)

CURRENT_DOC = 'current'

_PRECONDITION_ERRORS = (
    google_exceptions.AlreadyExists,
    google_exceptions.FailedPrecondition,
    google_exceptions.NotFound,
)


class RemoteStore:
    """
    Per-user list storage in Firestore at ``users/{uid}/{collection}/current``.

    Reads and writes are bounded by ``timeout``; a read that does not finish is
    reported as offline, a write that does not finish is reported as a
    success with ``offline: True`` since the items were cached first.
    """

    def __init__(self, client, collection: str, cache: Optional[SessionCache] = None,
                 timeout: float = REMOTE_TIMEOUT_SECONDS, max_retries: int = REMOTE_MAX_RETRIES):
        self.client = client
        self.collection = collection
        self.cache = cache if cache is not None else SessionCache()
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

    def _doc_ref(self, user_id: str):
        return (self.client.collection('users')
                .document(user_id)
                .collection(self.collection)
                .document(CURRENT_DOC))

    def cache_key(self, user_id: str) -> str:
        return f"firebase_{self.collection}_cache:{user_id}"

    def cached_items(self, user_id: str) -> Optional[List[LineItem]]:
        return self.cache.get(self.cache_key(user_id))

    def get_items(self, user_id: Optional[str]) -> dict:
        if not user_id:
            return {'success': False, 'items': [], 'error': NOT_LOGGED_IN}

        finished, snapshot, error = run_with_timeout(self._doc_ref(user_id).get, self.timeout)
        if not finished:
            logger.warning("Firestore read of %s timed out for %s", self.collection, user_id)
            return {'success': False, 'items': [], 'error': OFFLINE, 'offline': True}
        if error is not None:
            logger.warning("Error loading %s from Firestore for %s: %s", self.collection, user_id, error)
            return {'success': False, 'items': [], 'error': OFFLINE, 'offline': True}

        if not snapshot.exists:
            logger.debug("No %s document for %s", self.collection, user_id)
            return {'success': True, 'items': [], 'version': None}

        data = snapshot.to_dict() or {}
        raw_items = data.get('items')
        if not isinstance(raw_items, list):
            logger.warning("%s document for %s has no valid items array", self.collection, user_id)
            raw_items = []

        return {'success': True, 'items': parse_items(raw_items), 'version': snapshot.update_time}

    def _write(self, user_id: str, items: List[LineItem], check_version: bool, version):
        doc_ref = self._doc_ref(user_id)
        payload = {
            'items': dump_items(items),
            'updatedAt': firestore.SERVER_TIMESTAMP,
            'userId': user_id,
        }

        if not check_version:
            doc_ref.set(payload)
            return

        try:
            if version is None:
                doc_ref.create(payload)
            else:
                doc_ref.update(payload, option=self.client.write_option(last_update_time=version))
        except _PRECONDITION_ERRORS as e:
            raise ConflictError(f"{self.collection} for {user_id} changed since it was read") from e

    def save_items(self, user_id: Optional[str], items: List[LineItem],
                   check_version: bool = False, version=None) -> dict:
        if not user_id:
            return {'success': False, 'error': NOT_LOGGED_IN}

        self.cache.put(self.cache_key(user_id), items)

        finished, _, error = run_with_timeout(self._write, self.timeout, user_id, items, check_version, version)
        if not finished:
            logger.warning("Firestore write of %s timed out for %s; using cached copy", self.collection, user_id)
            return {'success': True, 'offline': True, 'message': 'Saved locally, will sync when online'}
        if isinstance(error, ConflictError):
            logger.info("%s", error)
            return {'success': False, 'error': CONFLICT, 'message': str(error)}
        if error is not None:
            logger.warning("Error saving %s to Firestore for %s: %s", self.collection, user_id, error)
            return {'success': True, 'offline': True, 'message': 'Saved locally, will sync when online'}

        logger.debug("Saved %d %s items for %s", len(items), self.collection, user_id)
        return {'success': True}

    def update_items(self, user_id: Optional[str], mutator: Callable[[List[LineItem]], List[LineItem]]) -> dict:
        """Read the whole list, apply ``mutator`` and write it back if unchanged remotely."""
        items: List[LineItem] = []
        for attempt in range(1, self.max_retries + 1):
            current = self.get_items(user_id)
            if not current['success']:
                return current

            items = mutator(current['items'])
            result = self.save_items(user_id, items, check_version=True, version=current.get('version'))
            if result.get('error') != CONFLICT:
                result['items'] = items
                return result

            logger.warning("Conflict updating %s for %s (attempt %d/%d)",
                           self.collection, user_id, attempt, self.max_retries)

        return {'success': False, 'error': CONFLICT, 'items': items,
                'message': f"Gave up after {self.max_retries} conflicting writes"}
