"""
Tests for extraction/service/storage.py
"""

from unittest.mock import Mock, patch

import requests
from django.test import TestCase, override_settings

from extraction.service.storage import (
    delete_from_storage,
    storage_download_url,
    storage_key,
    upload_to_storage,
)

SOURCE = 'https://v16.tiktokcdn.com/v.mp4'


@override_settings(VIDSCRIBE_STORAGE_UPLOAD_URL='https://storage.example.com/upload')
class UploadToStorageTest(TestCase):
    @patch('extraction.service.storage.requests.post')
    def test_returns_key(self, mock_post):
        mock_post.return_value = Mock()
        mock_post.return_value.json.return_value = {'key': 'videos/abc.mp4'}

        self.assertEqual(upload_to_storage(SOURCE), 'videos/abc.mp4')
        mock_post.assert_called_once_with(
            'https://storage.example.com/upload', json={'url': SOURCE}, timeout=60
        )

    @patch('extraction.service.storage.requests.post')
    def test_accepts_id(self, mock_post):
        mock_post.return_value = Mock()
        mock_post.return_value.json.return_value = {'id': 42}

        self.assertEqual(upload_to_storage(SOURCE), '42')

    @patch('extraction.service.storage.requests.post')
    def test_failure_returns_none(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('refused')
        messages = []

        self.assertIsNone(upload_to_storage(SOURCE, logger=messages.append))
        self.assertTrue(messages[0].startswith('Storage upload failed'))

    @patch('extraction.service.storage.requests.post')
    def test_missing_identifier(self, mock_post):
        mock_post.return_value = Mock()
        mock_post.return_value.json.return_value = {'ok': True}

        self.assertIsNone(upload_to_storage(SOURCE))

    @override_settings(VIDSCRIBE_STORAGE_UPLOAD_URL='')
    @patch('extraction.service.storage.requests.post')
    def test_not_configured(self, mock_post):
        self.assertIsNone(upload_to_storage(SOURCE))
        mock_post.assert_not_called()


@override_settings(
    VIDSCRIBE_STORAGE_DELETE_URL='https://storage.example.com/delete',
    VIDSCRIBE_STORAGE_PUBLIC_URL='https://media.example.com/',
)
class StoredObjectTest(TestCase):
    def test_storage_key(self):
        self.assertEqual(storage_key('videos/abc.mp4'), 'videos/abc.mp4')
        self.assertEqual(
            storage_key('https://abc.public.blob.example.com/videos/abc.mp4'), 'videos/abc.mp4'
        )
        self.assertIsNone(storage_key('https://abc.public.blob.example.com/'))
        self.assertIsNone(storage_key(''))

    def test_download_url(self):
        self.assertEqual(
            storage_download_url('videos/abc.mp4'), 'https://media.example.com/videos/abc.mp4'
        )
        self.assertEqual(
            storage_download_url('https://abc.public.blob.example.com/videos/abc.mp4'),
            'https://abc.public.blob.example.com/videos/abc.mp4',
        )

    @override_settings(VIDSCRIBE_STORAGE_PUBLIC_URL='')
    def test_download_url_not_configured(self):
        self.assertIsNone(storage_download_url('videos/abc.mp4'))

    @patch('extraction.service.storage.requests.post')
    def test_delete(self, mock_post):
        mock_post.return_value = Mock(status_code=200)

        self.assertTrue(delete_from_storage('https://abc.public.blob.example.com/videos/abc.mp4'))
        mock_post.assert_called_once_with(
            'https://storage.example.com/delete', json={'key': 'videos/abc.mp4'}, timeout=30
        )

    @patch('extraction.service.storage.requests.post')
    def test_delete_of_missing_object(self, mock_post):
        mock_post.return_value = Mock(status_code=404)

        self.assertTrue(delete_from_storage('videos/abc.mp4'))
        mock_post.return_value.raise_for_status.assert_not_called()

    @patch('extraction.service.storage.requests.post')
    def test_delete_failure(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('refused')
        messages = []

        self.assertFalse(delete_from_storage('videos/abc.mp4', logger=messages.append))
        self.assertTrue(messages[0].startswith('Storage delete failed'))

    @override_settings(VIDSCRIBE_STORAGE_DELETE_URL='')
    @patch('extraction.service.storage.requests.post')
    def test_delete_not_configured(self, mock_post):
        self.assertFalse(delete_from_storage('videos/abc.mp4'))
        mock_post.assert_not_called()
