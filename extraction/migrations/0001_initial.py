# Generated manually for the initial schema

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import extraction.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CreditEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('grant', 'Grant'), ('consumption', 'Consumption')], max_length=12)),
                ('amount', models.IntegerField()),
                ('remaining', models.IntegerField(default=0)),
                (
                    'status',
                    models.CharField(
                        choices=[('active', 'Active'), ('reversed', 'Reversed')],
                        db_index=True,
                        default='active',
                        max_length=10,
                    ),
                ),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('scene', models.CharField(blank=True, max_length=20)),
                ('description', models.CharField(blank=True, max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'owner',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='credit_entries',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'verbose_name_plural': 'credit entries',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['owner', 'kind', 'status'], name='credit_owner_kind_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='CreditDraw',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.PositiveIntegerField()),
                (
                    'consumption',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='draws',
                        to='extraction.creditentry',
                    ),
                ),
                (
                    'grant',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='drawn_by',
                        to='extraction.creditentry',
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name='VideoCache',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('fingerprint', models.CharField(max_length=64, unique=True)),
                ('platform', models.CharField(max_length=10)),
                ('original_url', models.URLField(max_length=2048)),
                ('download_url', models.URLField(max_length=2048)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
            ],
        ),
        migrations.CreateModel(
            name='MediaTask',
            fields=[
                (
                    'guid',
                    models.CharField(
                        default=extraction.models.generate_nanoid,
                        editable=False,
                        max_length=21,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ('platform', models.CharField(choices=[('youtube', 'YouTube'), ('tiktok', 'TikTok')], max_length=10)),
                ('source_url', models.URLField(max_length=2048)),
                (
                    'output_kind',
                    models.CharField(choices=[('captions', 'Captions'), ('media_file', 'Media file')], max_length=12),
                ),
                ('target_lang', models.CharField(blank=True, max_length=16)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('pending', 'Pending'),
                            ('processing', 'Processing'),
                            ('extracted', 'Extracted'),
                            ('translating', 'Translating'),
                            ('completed', 'Completed'),
                            ('failed', 'Failed'),
                        ],
                        db_index=True,
                        default='pending',
                        max_length=12,
                    ),
                ),
                ('progress', models.PositiveSmallIntegerField(default=0)),
                ('title', models.CharField(blank=True, max_length=500)),
                ('author', models.CharField(blank=True, max_length=200)),
                ('likes', models.BigIntegerField(default=0)),
                ('views', models.BigIntegerField(default=0)),
                ('shares', models.BigIntegerField(default=0)),
                ('duration_seconds', models.IntegerField(blank=True, null=True)),
                ('thumbnail_url', models.URLField(blank=True, max_length=2048)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('source_lang', models.CharField(blank=True, max_length=16)),
                ('captions', models.TextField(blank=True)),
                ('translated_captions', models.TextField(blank=True)),
                ('rewritten_text', models.TextField(blank=True)),
                ('rewrite_style', models.CharField(blank=True, max_length=20)),
                ('rewrite_instruction', models.TextField(blank=True)),
                ('storage_ref', models.CharField(blank=True, max_length=2048)),
                ('storage_expires_at', models.DateTimeField(blank=True, null=True)),
                (
                    'failure_reason',
                    models.CharField(
                        blank=True,
                        choices=[
                            ('provider', 'Provider'),
                            ('timeout', 'Timeout'),
                            ('persistence', 'Persistence'),
                            ('text_generation', 'Text generation'),
                            ('plan_limit', 'Plan limit'),
                            ('internal', 'Internal'),
                        ],
                        max_length=20,
                    ),
                ),
                ('error_message', models.TextField(blank=True)),
                ('is_free_trial', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True)),
                (
                    'credit',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='tasks',
                        to='extraction.creditentry',
                    ),
                ),
                (
                    'owner',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='media_tasks',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'updated_at'], name='task_status_updated_idx'),
                    models.Index(fields=['owner', 'status'], name='task_owner_status_idx'),
                ],
            },
        ),
    ]
