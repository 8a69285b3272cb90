"""Object storage for media whose source links expire quickly."""

import re
from urllib.parse import urlparse

import requests
from django.conf import settings

# Storage references that point at the platform URL rather than a stored object
ORIGINAL_PREFIX = 'original:'


def upload_to_storage(source_url, logger=None, timeout=60):
    """
    Ask the storage service to copy source_url into object storage.

    Args:
        source_url: Downloadable media URL
        logger: Optional callable(message) for logging
        timeout: Request timeout in seconds

    Returns:
        str | None: storage identifier, or None when storage is not
        configured or the upload failed
    """

    def log(message):
        if logger:
            logger(message)

    upload_url = settings.VIDSCRIBE_STORAGE_UPLOAD_URL
    if not upload_url:
        log('Storage service not configured')
        return None

    try:
        response = requests.post(upload_url, json={'url': source_url}, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        log(f'Storage upload failed: {e}')
        return None

    identifier = data.get('key') or data.get('id') if isinstance(data, dict) else None
    if not identifier:
        log('Storage upload returned no identifier')
        return None
    return str(identifier)


def storage_key(identifier):
    """
    Object key for a storage identifier.

    Identifiers are either bare keys ("videos/abc.mp4") or public object URLs,
    whose path is the key.
    """
    identifier = (identifier or '').strip()
    if re.match(r'^https?://', identifier, re.IGNORECASE):
        return urlparse(identifier).path.lstrip('/') or None
    return identifier or None


def storage_download_url(identifier):
    """Public URL for a stored object, None when it cannot be built"""
    identifier = (identifier or '').strip()
    if re.match(r'^https?://', identifier, re.IGNORECASE):
        return identifier
    public_url = settings.VIDSCRIBE_STORAGE_PUBLIC_URL
    key = storage_key(identifier)
    if not public_url or not key:
        return None
    return f'{public_url.rstrip("/")}/{key}'


def delete_from_storage(identifier, logger=None, timeout=30):
    """
    Ask the storage service to delete a stored object.

    Returns:
        bool: True when the object is gone (deleted now or already missing)
    """

    def log(message):
        if logger:
            logger(message)

    delete_url = settings.VIDSCRIBE_STORAGE_DELETE_URL
    if not delete_url:
        log('Storage delete endpoint not configured')
        return False

    key = storage_key(identifier)
    if not key:
        log(f'Could not extract a storage key from: {(identifier or "")[:100]}')
        return False

    try:
        response = requests.post(delete_url, json={'key': key}, timeout=timeout)
        if response.status_code == 404:
            log(f'Storage object already gone: {key}')
            return True
        response.raise_for_status()
    except requests.RequestException as e:
        log(f'Storage delete failed for {key}: {e}')
        return False

    log(f'Deleted storage object: {key}')
    return True
