from django.contrib import admin
from django.utils.html import format_html

from extraction import watchdog
from extraction.ledger import refund
from extraction.models import CreditDraw, CreditEntry, MediaTask, VideoCache
from extraction.operations import redispatch
from extraction.utils import read_log


@admin.register(MediaTask)
class MediaTaskAdmin(admin.ModelAdmin):
    list_display = [
        'guid',
        'title_display',
        'owner',
        'platform',
        'output_kind',
        'status',
        'progress',
        'failure_reason',
        'is_free_trial',
        'updated_at',
    ]

    list_filter = [
        'status',
        'platform',
        'output_kind',
        'failure_reason',
        'is_free_trial',
        'created_at',
    ]

    search_fields = [
        'guid',
        'title',
        'author',
        'source_url',
        'owner__username',
    ]

    readonly_fields = [
        'guid',
        'credit',
        'created_at',
        'updated_at',
        'log_display',
    ]

    fieldsets = [
        ('Identification', {'fields': ['guid', 'owner', 'platform', 'source_url']}),
        (
            'Request',
            {'fields': ['output_kind', 'target_lang', 'rewrite_style', 'rewrite_instruction']},
        ),
        ('Status', {'fields': ['status', 'progress', 'failure_reason', 'error_message']}),
        (
            'Metadata',
            {
                'fields': [
                    'title',
                    'author',
                    'likes',
                    'views',
                    'shares',
                    'duration_seconds',
                    'thumbnail_url',
                    'published_at',
                    'source_lang',
                ]
            },
        ),
        (
            'Results',
            {
                'fields': [
                    'captions',
                    'translated_captions',
                    'rewritten_text',
                    'storage_ref',
                    'storage_expires_at',
                ]
            },
        ),
        ('Billing', {'fields': ['credit', 'is_free_trial']}),
        ('Logs', {'fields': ['log_display']}),
        ('Timestamps', {'fields': ['created_at', 'updated_at']}),
    ]

    actions = ['redispatch_tasks', 'sweep_stale']

    def title_display(self, obj):
        return obj.title or obj.source_url

    title_display.short_description = 'Title'

    def log_display(self, obj):
        try:
            log_content = read_log(obj)
        except OSError as e:
            return f'Error reading log: {e}'
        if not log_content:
            return 'No log file'
        return format_html(
            '<a name="log"></a><pre style="background: #f5f5f5; padding: 10px; '
            'border-radius: 4px; max-height: 400px; overflow: auto;">{}</pre>',
            log_content,
        )

    log_display.short_description = 'Logs'

    def redispatch_tasks(self, request, queryset):
        count = 0
        for task in queryset.filter(status=MediaTask.STATUS_PENDING):
            if redispatch(task.guid):
                count += 1
        self.message_user(request, f'Re-dispatched {count} pending tasks.')

    redispatch_tasks.short_description = 'Re-dispatch selected pending tasks'

    def sweep_stale(self, request, queryset):
        swept = watchdog.sweep()
        self.message_user(request, f'Watchdog failed {swept} stale tasks.')

    sweep_stale.short_description = 'Run watchdog sweep now'


class CreditDrawInline(admin.TabularInline):
    model = CreditDraw
    fk_name = 'consumption'
    extra = 0
    readonly_fields = ['grant', 'amount']
    can_delete = False


@admin.register(CreditEntry)
class CreditEntryAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'owner',
        'kind',
        'amount',
        'remaining',
        'status',
        'scene',
        'expires_at',
        'created_at',
    ]

    list_filter = ['kind', 'status', 'scene', 'created_at']

    search_fields = ['owner__username', 'description']

    readonly_fields = ['created_at']

    inlines = [CreditDrawInline]

    actions = ['refund_consumptions']

    def refund_consumptions(self, request, queryset):
        count = 0
        for entry in queryset.filter(kind=CreditEntry.KIND_CONSUMPTION):
            if refund(entry.pk):
                count += 1
        self.message_user(request, f'Refunded {count} consumptions.')

    refund_consumptions.short_description = 'Refund selected consumptions'


@admin.register(VideoCache)
class VideoCacheAdmin(admin.ModelAdmin):
    list_display = ['fingerprint', 'platform', 'original_url', 'expires_at', 'created_at']
    list_filter = ['platform']
    search_fields = ['fingerprint', 'original_url']
