import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import requests
from google.api_core import exceptions as google_exceptions

from .config import ALERT_LOG_LIMIT, CATALOG_BASE_URL, CATALOG_TIMEOUT_SECONDS, REMOTE_MAX_RETRIES
from .errors import CatalogUnavailableError, ConflictError
from .logger import get_logger
from .models import StockAlert
from .utils import now_iso

logger = get_logger(__name__)

NOTIFICATIONS_PATH = 'adminData/notifications.json'
ACTIONS = ('add', 'mark_read', 'delete', 'mark_all_read', 'clear_all')

Notification = Dict[str, Any]


def _timestamp_key(notification: Notification) -> datetime:
    value = notification.get('timestamp') or ''
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_newest_first(notifications: List[Notification]) -> List[Notification]:
    return sorted(notifications, key=_timestamp_key, reverse=True)


def apply_notification_action(notifications: List[Notification], action: str,
                              notification: Optional[Notification] = None,
                              notification_id: Optional[str] = None,
                              limit: int = ALERT_LOG_LIMIT) -> List[Notification]:
    """Return the notification log after ``action``, trimmed to the newest ``limit`` entries."""
    updated = [dict(n) for n in notifications]

    if action == 'add':
        if not notification:
            raise ValueError('Notification data required for add action')
        updated.insert(0, dict(notification))
    elif action == 'mark_read':
        if not notification_id:
            raise ValueError('Notification ID required for mark_read action')
        for n in updated:
            if n.get('id') == notification_id:
                n['read'] = True
                break
    elif action == 'delete':
        if not notification_id:
            raise ValueError('Notification ID required for delete action')
        for index, n in enumerate(updated):
            if n.get('id') == notification_id:
                del updated[index]
                break
    elif action == 'mark_all_read':
        for n in updated:
            n['read'] = True
    elif action == 'clear_all':
        updated = []
    else:
        raise ValueError(f'Unknown action: {action}')

    return sort_newest_first(updated)[:limit]


def _as_dict(alert: Union[StockAlert, Notification]) -> Notification:
    return alert.to_dict() if isinstance(alert, StockAlert) else dict(alert)


class NotificationStore:
    """Admin notification log stored as a single JSON file in the bucket."""

    def __init__(self, bucket, max_retries: int = REMOTE_MAX_RETRIES):
        self.bucket = bucket
        self.max_retries = max(1, max_retries)

    def _read(self):
        try:
            blob = self.bucket.get_blob(NOTIFICATIONS_PATH)
            if blob is None:
                return [], 0
            raw = blob.download_as_text()
        except google_exceptions.GoogleAPIError as e:
            raise CatalogUnavailableError(f"Failed to read notifications: {e}") from e

        try:
            notifications = json.loads(raw)
        except ValueError:
            logger.warning("Invalid notifications JSON, starting a new log")
            notifications = []
        if not isinstance(notifications, list):
            notifications = []
        return notifications, blob.generation

    def list(self) -> List[Notification]:
        notifications, _ = self._read()
        return sort_newest_first(notifications)

    def perform(self, action: str, notification: Optional[Notification] = None,
                notification_id: Optional[str] = None) -> List[Notification]:
        for attempt in range(1, self.max_retries + 1):
            notifications, generation = self._read()
            updated = apply_notification_action(notifications, action, notification, notification_id)

            blob = self.bucket.blob(NOTIFICATIONS_PATH)
            blob.metadata = {'lastUpdated': now_iso(), 'totalNotifications': str(len(updated))}
            try:
                blob.upload_from_string(json.dumps(updated, indent=2), content_type='application/json',
                                        if_generation_match=generation)
            except google_exceptions.PreconditionFailed:
                logger.warning("Notification log changed during %s (attempt %d/%d)",
                               action, attempt, self.max_retries)
                continue
            except google_exceptions.GoogleAPIError as e:
                raise CatalogUnavailableError(f"Failed to save notifications: {e}") from e

            logger.info("Performed notification action %s (%d stored)", action, len(updated))
            return updated

        raise ConflictError(f"Notification log kept changing during {action}")

    def add(self, alert: Union[StockAlert, Notification]) -> dict:
        notification = _as_dict(alert)
        self.perform('add', notification=notification)
        return {'success': True, 'notification': notification}


class NotificationClient:
    """HTTP access to the admin notifications endpoint."""

    def __init__(self, base_url: str = CATALOG_BASE_URL, session: Optional[requests.Session] = None,
                 timeout: float = CATALOG_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip('/')
        self.http = session if session is not None else requests.Session()
        self.timeout = timeout

    def add(self, alert: Union[StockAlert, Notification]) -> dict:
        notification = _as_dict(alert)
        try:
            response = self.http.post(
                f'{self.base_url}/api/admin/notifications',
                json={'action': 'add', 'notification': notification},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise CatalogUnavailableError(f"Failed to send {notification.get('type')} notification: {e}") from e

        if response.status_code != 200:
            raise CatalogUnavailableError(
                f"Failed to send {notification.get('type')} notification: {response.status_code}")
        return {'success': True, 'notification': notification}

    def list(self) -> List[Notification]:
        try:
            response = self.http.get(f'{self.base_url}/api/admin/notifications', timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CatalogUnavailableError(f"Failed to load notifications: {e}") from e
        if response.status_code != 200:
            raise CatalogUnavailableError(f"Failed to load notifications: {response.status_code}")
        return response.json().get('notifications') or []
