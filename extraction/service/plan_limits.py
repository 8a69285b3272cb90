"""Plan limits: concurrency cap, free-trial allowance and duration cap."""

from dataclasses import dataclass

from django.conf import settings


class QuotaExceeded(Exception):
    """Raised when a submission would exceed the owner's plan"""

    pass


@dataclass
class PlanLimits:
    max_active_tasks: int
    free_trial_tasks: int
    max_duration_seconds: int

    @classmethod
    def from_settings(cls):
        return cls(
            max_active_tasks=settings.VIDSCRIBE_MAX_ACTIVE_TASKS,
            free_trial_tasks=settings.VIDSCRIBE_FREE_TRIAL_TASKS,
            max_duration_seconds=settings.VIDSCRIBE_MAX_DURATION_SECONDS,
        )

    def check_concurrency(self, owner):
        """
        Raises:
            QuotaExceeded: owner already has max_active_tasks running
        """
        from extraction.models import MediaTask
        from extraction.task_state import WATCHED_STATUSES

        active = MediaTask.objects.filter(owner=owner, status__in=WATCHED_STATUSES).count()
        if active >= self.max_active_tasks:
            raise QuotaExceeded(
                f'Too many tasks in progress ({active}/{self.max_active_tasks}). '
                'Wait for one to finish.'
            )

    def free_trial_available(self, owner):
        """True while the owner has free-trial submissions left"""
        from extraction.models import MediaTask

        used = MediaTask.objects.filter(owner=owner, is_free_trial=True).count()
        return used < self.free_trial_tasks

    def duration_allowed(self, duration_seconds):
        if duration_seconds is None or not self.max_duration_seconds:
            return True
        return duration_seconds <= self.max_duration_seconds
