from pathlib import Path

from django.conf import settings
from django.db import models
from nanoid import generate


def generate_nanoid():
    """Generate NanoID with A-Z a-z 0-9 alphabet"""
    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    return generate(alphabet, size=21)


class MediaTask(models.Model):
    """One extraction request for a remote YouTube or TikTok URL"""

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_EXTRACTED = "extracted"
    STATUS_TRANSLATING = "translating"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_EXTRACTED, "Extracted"),
        (STATUS_TRANSLATING, "Translating"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    PLATFORM_YOUTUBE = "youtube"
    PLATFORM_TIKTOK = "tiktok"

    PLATFORM_CHOICES = [
        (PLATFORM_YOUTUBE, "YouTube"),
        (PLATFORM_TIKTOK, "TikTok"),
    ]

    OUTPUT_CAPTIONS = "captions"
    OUTPUT_MEDIA_FILE = "media_file"

    OUTPUT_CHOICES = [
        (OUTPUT_CAPTIONS, "Captions"),
        (OUTPUT_MEDIA_FILE, "Media file"),
    ]

    # Failure reasons
    FAILURE_PROVIDER = "provider"
    FAILURE_TIMEOUT = "timeout"
    FAILURE_PERSISTENCE = "persistence"
    FAILURE_TEXT_GENERATION = "text_generation"
    FAILURE_PLAN_LIMIT = "plan_limit"
    FAILURE_INTERNAL = "internal"

    FAILURE_CHOICES = [
        (FAILURE_PROVIDER, "Provider"),
        (FAILURE_TIMEOUT, "Timeout"),
        (FAILURE_PERSISTENCE, "Persistence"),
        (FAILURE_TEXT_GENERATION, "Text generation"),
        (FAILURE_PLAN_LIMIT, "Plan limit"),
        (FAILURE_INTERNAL, "Internal"),
    ]

    guid = models.CharField(
        max_length=21, primary_key=True, default=generate_nanoid, editable=False
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="media_tasks"
    )

    # Request
    platform = models.CharField(max_length=10, choices=PLATFORM_CHOICES)
    source_url = models.URLField(max_length=2048)
    output_kind = models.CharField(max_length=12, choices=OUTPUT_CHOICES)
    target_lang = models.CharField(max_length=16, blank=True)
    status = models.CharField(
        max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True
    )
    progress = models.PositiveSmallIntegerField(default=0)

    # Normalized metadata
    title = models.CharField(max_length=500, blank=True)
    author = models.CharField(max_length=200, blank=True)
    likes = models.BigIntegerField(default=0)
    views = models.BigIntegerField(default=0)
    shares = models.BigIntegerField(default=0)
    duration_seconds = models.IntegerField(null=True, blank=True)
    thumbnail_url = models.URLField(max_length=2048, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)
    source_lang = models.CharField(max_length=16, blank=True)

    # Payloads
    captions = models.TextField(blank=True)
    translated_captions = models.TextField(blank=True)
    rewritten_text = models.TextField(blank=True)
    rewrite_style = models.CharField(max_length=20, blank=True)
    rewrite_instruction = models.TextField(blank=True)

    # Downloadable media reference
    storage_ref = models.CharField(max_length=2048, blank=True)
    storage_expires_at = models.DateTimeField(null=True, blank=True)

    # Failure
    failure_reason = models.CharField(max_length=20, choices=FAILURE_CHOICES, blank=True)
    error_message = models.TextField(blank=True)

    # Billing
    credit = models.ForeignKey(
        "CreditEntry",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tasks",
    )
    is_free_trial = models.BooleanField(default=False)

    # Timestamps; updated_at doubles as the liveness heartbeat
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "updated_at"], name="task_status_updated_idx"),
            models.Index(fields=["owner", "status"], name="task_owner_status_idx"),
        ]

    def __str__(self):
        return f"{self.title or self.source_url} ({self.guid})"

    @property
    def is_terminal(self):
        return self.status in (self.STATUS_COMPLETED, self.STATUS_FAILED)

    @property
    def rewrite_requested(self):
        return bool(self.rewrite_style) and not self.rewritten_text

    @property
    def translation_pending(self):
        return bool(self.target_lang and self.captions) and not self.translated_captions

    @property
    def has_pending_work(self):
        """True for an extracted task that still owes a translation or a rewrite"""
        return self.status == self.STATUS_EXTRACTED and (
            self.translation_pending or self.rewrite_requested
        )

    def get_log_path(self):
        """Get absolute path to this task's log file"""
        return Path(settings.VIDSCRIBE_LOG_DIR) / f"{self.guid}.log"


class CreditEntry(models.Model):
    """
    Ledger row. Grants carry a positive amount and a remaining balance;
    consumptions carry a negative amount and their draws.
    """

    KIND_GRANT = "grant"
    KIND_CONSUMPTION = "consumption"

    KIND_CHOICES = [
        (KIND_GRANT, "Grant"),
        (KIND_CONSUMPTION, "Consumption"),
    ]

    STATUS_ACTIVE = "active"
    STATUS_REVERSED = "reversed"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_REVERSED, "Reversed"),
    ]

    SCENE_GRANT = "grant"
    SCENE_TASK_COST = "task_cost"

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="credit_entries"
    )
    kind = models.CharField(max_length=12, choices=KIND_CHOICES)
    amount = models.IntegerField()
    remaining = models.IntegerField(default=0)
    status = models.CharField(
        max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True
    )
    expires_at = models.DateTimeField(null=True, blank=True)
    scene = models.CharField(max_length=20, blank=True)
    description = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "credit entries"
        indexes = [
            models.Index(fields=["owner", "kind", "status"], name="credit_owner_kind_status_idx"),
        ]

    def __str__(self):
        return f"{self.kind} {self.amount} ({self.owner_id}, {self.status})"


class CreditDraw(models.Model):
    """Amount a consumption took from one grant"""

    consumption = models.ForeignKey(
        CreditEntry, on_delete=models.CASCADE, related_name="draws"
    )
    grant = models.ForeignKey(
        CreditEntry, on_delete=models.CASCADE, related_name="drawn_by"
    )
    amount = models.PositiveIntegerField()

    def __str__(self):
        return f"{self.amount} from grant {self.grant_id}"


class VideoCache(models.Model):
    """Downloadable media reference keyed by URL fingerprint"""

    fingerprint = models.CharField(max_length=64, unique=True)
    platform = models.CharField(max_length=10)
    original_url = models.URLField(max_length=2048)
    download_url = models.URLField(max_length=2048)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(db_index=True)

    def __str__(self):
        return f"{self.platform}:{self.fingerprint[:12]}"
