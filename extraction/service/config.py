"""
Configuration adapter for extraction settings.

Centralizes access to Django settings so the pipeline, the dispatcher and
management commands read configuration the same way.
"""

from django.conf import settings

from extraction.service.providers import OUTPUT_CAPTIONS, OUTPUT_MEDIA_FILE, build_provider


def get_task_cost(output_kind):
    """
    Get the credit cost of a submission.

    Args:
        output_kind: 'captions' or 'media_file'

    Returns:
        int: credits charged at submission
    """
    if output_kind == OUTPUT_MEDIA_FILE:
        return settings.VIDSCRIBE_COST_MEDIA_FILE
    elif output_kind == OUTPUT_CAPTIONS:
        return settings.VIDSCRIBE_COST_CAPTIONS
    raise ValueError(f'Unknown output kind: {output_kind}')


def get_watchdog_timeout():
    """Seconds without a heartbeat before a task is considered stuck"""
    return settings.VIDSCRIBE_WATCHDOG_TIMEOUT_SECONDS


def get_heartbeat_interval():
    return settings.VIDSCRIBE_HEARTBEAT_INTERVAL_SECONDS


def get_cache_ttl_hours():
    return settings.VIDSCRIBE_CACHE_TTL_HOURS


def get_providers():
    """
    Build the (primary, backup) provider clients.

    Returns:
        tuple: (primary, backup)
    """
    providers = settings.VIDSCRIBE_PROVIDERS
    api_key = settings.VIDSCRIBE_RAPIDAPI_KEY
    proxy = settings.VIDSCRIBE_YTDLP_PROXY or None
    return (
        build_provider(providers['primary'], api_key=api_key, proxy=proxy),
        build_provider(providers['backup'], api_key=api_key, proxy=proxy),
    )


def get_dispatch_config():
    """Build a DispatchConfig from settings"""
    from extraction.dispatch import DispatchConfig

    return DispatchConfig(
        order=[name.strip() for name in settings.VIDSCRIBE_DISPATCH_ORDER if name.strip()],
        continuation_hook=settings.VIDSCRIBE_CONTINUATION_HOOK,
        queue_enabled=settings.VIDSCRIBE_QUEUE_ENABLED,
        trigger_url=settings.VIDSCRIBE_PROCESS_INTERNAL_URL,
        trigger_secret=settings.VIDSCRIBE_INTERNAL_SECRET,
        trigger_timeout=settings.VIDSCRIBE_TRIGGER_TIMEOUT_SECONDS,
        timer_delay=settings.VIDSCRIBE_TIMER_DELAY_SECONDS,
    )


def get_storage_platforms():
    """Platforms whose media is copied to the storage service"""
    return [p.strip() for p in settings.VIDSCRIBE_STORAGE_PLATFORMS if p.strip()]
