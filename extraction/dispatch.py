"""
Execution dispatch.

The web process may be frozen as soon as it returns a response, so starting
the pipeline is attempted through several independent mechanisms, in order,
until one accepts the task. Running a task twice is harmless: the pipeline's
writes are conditional on the status it expects.
"""

import threading
from dataclasses import dataclass, field
from typing import List

import requests
from django.db import close_old_connections
from django.utils.module_loading import import_string

from extraction.utils import write_log


class DispatchUnavailable(Exception):
    """Raised by a strategy that is not configured in this deployment"""

    pass


@dataclass
class DispatchConfig:
    order: List[str] = field(
        default_factory=lambda: ['continuation', 'queue', 'trigger', 'timer']
    )
    continuation_hook: str = ''
    queue_enabled: bool = True
    trigger_url: str = ''
    trigger_secret: str = ''
    trigger_timeout: float = 2.0
    timer_delay: float = 0.1


def task_payload(task):
    return {
        'taskId': task.guid,
        'url': task.source_url,
        'outputKind': task.output_kind,
        'owner': task.owner_id,
    }


def run_in_thread(guid):
    """Run the pipeline outside a request, with its own DB connection"""
    from extraction.pipeline import run_task

    close_old_connections()
    try:
        run_task(guid)
    finally:
        close_old_connections()


class ContinuationStrategy:
    """Hand the pipeline to a host hook that keeps running after the response"""

    name = 'continuation'

    def __init__(self, hook_path):
        self.hook_path = hook_path

    def dispatch(self, task):
        if not self.hook_path:
            raise DispatchUnavailable('No continuation hook configured')
        from extraction.pipeline import run_task

        hook = import_string(self.hook_path)
        guid = task.guid
        hook(lambda: run_task(guid))


class QueueStrategy:
    """Enqueue on the durable huey queue"""

    name = 'queue'

    def __init__(self, enabled):
        self.enabled = enabled

    def dispatch(self, task):
        if not self.enabled:
            raise DispatchUnavailable('Queue disabled')
        from extraction.tasks import process_media_task

        process_media_task(task_payload(task))


class TriggerStrategy:
    """
    POST to the internal processing endpoint so another invocation runs it.

    The request is not awaited: a read timeout means the endpoint accepted
    the connection and is working.
    """

    name = 'trigger'

    def __init__(self, url, secret, timeout=2.0):
        self.url = url
        self.secret = secret
        self.timeout = timeout

    def dispatch(self, task):
        if not self.url:
            raise DispatchUnavailable('No internal processing URL configured')
        try:
            response = requests.post(
                self.url,
                json=task_payload(task),
                headers={'X-Vidscribe-Secret': self.secret},
                timeout=(3, self.timeout),
            )
        except requests.ReadTimeout:
            return
        response.raise_for_status()


class TimerStrategy:
    """Run the pipeline on a local timer thread in this process"""

    name = 'timer'

    def __init__(self, delay=0.1):
        self.delay = delay

    def dispatch(self, task):
        timer = threading.Timer(self.delay, run_in_thread, args=[task.guid])
        timer.daemon = True
        timer.start()


class InlineStrategy:
    """Run the pipeline synchronously in the caller (CLI and debugging)"""

    name = 'inline'

    def dispatch(self, task):
        from extraction.pipeline import run_task

        run_task(task.guid)


class Dispatcher:
    def __init__(self, strategies):
        self.strategies = list(strategies)

    def dispatch(self, task):
        """
        Try each strategy in order until one accepts the task.

        Returns:
            str | None: name of the strategy that accepted, None if all
            failed (the task stays pending until the watchdog reclaims it)
        """
        log_path = task.get_log_path()
        for strategy in self.strategies:
            try:
                strategy.dispatch(task)
            except DispatchUnavailable as e:
                write_log(log_path, f'Dispatch {strategy.name} skipped: {e}')
                continue
            except Exception as e:
                write_log(log_path, f'Dispatch {strategy.name} failed: {type(e).__name__}: {e}')
                continue
            write_log(log_path, f'Dispatched via {strategy.name}')
            return strategy.name

        write_log(log_path, 'All dispatch strategies failed; task left pending')
        return None


STRATEGY_BUILDERS = {
    'continuation': lambda c: ContinuationStrategy(c.continuation_hook),
    'queue': lambda c: QueueStrategy(c.queue_enabled),
    'trigger': lambda c: TriggerStrategy(c.trigger_url, c.trigger_secret, c.trigger_timeout),
    'timer': lambda c: TimerStrategy(c.timer_delay),
    'inline': lambda c: InlineStrategy(),
}


def build_dispatcher(config):
    """Build a Dispatcher with strategies in config.order"""
    strategies = []
    for name in config.order:
        if name not in STRATEGY_BUILDERS:
            raise ValueError(f'Unknown dispatch strategy: {name}')
        strategies.append(STRATEGY_BUILDERS[name](config))
    return Dispatcher(strategies)
