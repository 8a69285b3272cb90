"""
URL configuration for vidscribe project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/stable/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path

from extraction.views import (
    credits_view,
    download_view,
    process_internal_view,
    rewrite_view,
    status_stream_view,
    status_view,
    submit_view,
)

admin.site.site_header = 'VidScribe Administration'
admin.site.site_title = 'VidScribe site admin'


urlpatterns = [
    path('admin/', admin.site.urls),
    # API
    path('api/media/submit/', submit_view, name='media_submit'),
    path('api/media/status/', status_view, name='media_status'),
    path('api/media/<str:guid>/stream/', status_stream_view, name='media_status_stream'),
    path('api/media/<str:guid>/download/', download_view, name='media_download'),
    path('api/media/rewrite/', rewrite_view, name='media_rewrite'),
    path('api/media/credits/', credits_view, name='media_credits'),
    path('api/media/process-internal/', process_internal_view, name='media_process_internal'),
]
