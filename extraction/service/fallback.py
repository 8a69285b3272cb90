"""
Primary/backup provider fallback.

Each provider gets one attempt with its own wall-clock timeout. The backup
runs only when the primary did not succeed.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError

from extraction.service.providers import NETWORK, OTHER, ProviderResult


class ProviderFallbackError(Exception):
    """Raised when both the primary and the backup provider failed"""

    def __init__(self, primary_result, backup_result):
        self.primary_result = primary_result
        self.backup_result = backup_result
        super().__init__(
            f'All providers failed. '
            f'{primary_result.provider}: {primary_result.classification} ({primary_result.message}); '
            f'{backup_result.provider}: {backup_result.classification} ({backup_result.message})'
        )


def attempt(provider, url, output_kind, timeout):
    """
    Run one provider call, giving up after `timeout` seconds.

    A call that overruns is abandoned, not cancelled; its worker thread
    finishes in the background and its result is discarded.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(provider.fetch, url, output_kind)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        return ProviderResult(provider.name, NETWORK, message=f'Timed out after {timeout}s')
    except Exception as e:
        return ProviderResult(provider.name, OTHER, message=f'{type(e).__name__}: {e}')
    finally:
        executor.shutdown(wait=False)


def fetch_with_fallback(url, output_kind, primary, backup, logger=None):
    """
    Fetch normalized media, falling back to the backup provider once.

    Args:
        url: Source URL
        output_kind: 'captions' or 'media_file'
        primary: provider client tried first
        backup: provider client tried when the primary does not succeed
        logger: Optional callable(message) for logging

    Returns:
        NormalizedMedia

    Raises:
        ProviderFallbackError: neither provider succeeded
    """

    def log(message):
        if logger:
            logger(message)

    primary_result = attempt(primary, url, output_kind, primary.timeout)
    log(f'Provider {primary.name} classified as {primary_result.classification}')
    if primary_result.success:
        return primary_result.data

    if primary_result.message:
        log(f'Provider {primary.name}: {primary_result.message}')
    log(f'Switching to backup provider {backup.name}')

    backup_result = attempt(backup, url, output_kind, backup.timeout)
    log(f'Provider {backup.name} classified as {backup_result.classification}')
    if backup_result.success:
        return backup_result.data

    if backup_result.message:
        log(f'Provider {backup.name}: {backup_result.message}')
    raise ProviderFallbackError(primary_result, backup_result)
