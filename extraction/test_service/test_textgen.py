"""
Tests for extraction/service/textgen.py
"""

import json
from unittest.mock import MagicMock, Mock, patch

import requests
from django.test import TestCase, override_settings

from extraction.service.textgen import (
    REWRITE_STYLES,
    StepCheck,
    TextGenerationError,
    build_rewrite_prompt,
    build_translation_prompt,
    check_text_generation,
    clean_translation,
    list_models,
    model_installed,
    run_step,
    stream_text,
)

SRT = '1\n00:00:00,000 --> 00:00:02,000\nHello there\n'


def streaming_post(lines):
    """Mock requests.post used as a context manager yielding NDJSON lines"""
    response = MagicMock()
    response.iter_lines.return_value = [json.dumps(line).encode() if isinstance(line, dict) else line for line in lines]
    post = MagicMock()
    post.return_value.__enter__.return_value = response
    return post, response


@override_settings(VIDSCRIBE_OLLAMA_HOST='http://ollama:11434', VIDSCRIBE_OLLAMA_MODEL='llama3.2')
class StreamTextTest(TestCase):
    def test_yields_chunks_until_done(self):
        post, _ = streaming_post([
            {'response': 'Hola', 'done': False},
            b'',
            {'response': ' amigo', 'done': False},
            {'response': '', 'done': True},
            {'response': 'ignored'},
        ])

        with patch('extraction.service.textgen.requests.post', post):
            chunks = list(stream_text('prompt'))

        self.assertEqual(chunks, ['Hola', ' amigo'])
        args, kwargs = post.call_args
        self.assertEqual(args[0], 'http://ollama:11434/api/generate')
        self.assertEqual(kwargs['json']['model'], 'llama3.2')
        self.assertTrue(kwargs['json']['stream'])
        self.assertTrue(kwargs['stream'])

    def test_error_line_raises(self):
        post, _ = streaming_post([{'error': 'model not found'}])

        with patch('extraction.service.textgen.requests.post', post):
            with self.assertRaises(TextGenerationError) as ctx:
                list(stream_text('prompt'))

        self.assertIn('model not found', str(ctx.exception))

    def test_connection_error_raises(self):
        with patch(
            'extraction.service.textgen.requests.post',
            side_effect=requests.ConnectionError('refused'),
        ):
            with self.assertRaises(TextGenerationError):
                list(stream_text('prompt'))

    def test_http_error_raises(self):
        post, response = streaming_post([])
        response.raise_for_status.side_effect = requests.HTTPError('500 Server Error')

        with patch('extraction.service.textgen.requests.post', post):
            with self.assertRaises(TextGenerationError):
                list(stream_text('prompt'))

    def test_invalid_json_raises(self):
        post, _ = streaming_post([b'{not json'])

        with patch('extraction.service.textgen.requests.post', post):
            with self.assertRaises(TextGenerationError):
                list(stream_text('prompt'))


class PromptTest(TestCase):
    def test_translation_prompt(self):
        prompt = build_translation_prompt(SRT, 'zh-CN')

        self.assertIn('Simplified Chinese (zh-CN)', prompt)
        self.assertIn(SRT, prompt)

    def test_rewrite_prompt_uses_plain_text(self):
        prompt = build_rewrite_prompt(SRT, 'script')

        self.assertIn(REWRITE_STYLES['script'], prompt)
        self.assertIn('Hello there', prompt)
        self.assertNotIn('-->', prompt)
        self.assertIn('Apply the style freely.', prompt)

    def test_rewrite_prompt_with_instruction(self):
        prompt = build_rewrite_prompt(SRT, 'tiktok', 'Mention the price twice')

        self.assertIn('Mention the price twice', prompt)
        self.assertNotIn('Apply the style freely.', prompt)

    def test_clean_translation(self):
        raw = "Here is the translation:\n```srt\n1\n00:00:00,000 --> 00:00:02,000\nHola\n```"

        self.assertEqual(clean_translation(raw), '1\n00:00:00,000 --> 00:00:02,000\nHola\n')


@override_settings(VIDSCRIBE_OLLAMA_HOST='http://ollama:11434', VIDSCRIBE_OLLAMA_MODEL='llama3.2')
class ListModelsTest(TestCase):
    @patch('extraction.service.textgen.requests.get')
    def test_lists_names(self, mock_get):
        mock_get.return_value = Mock()
        mock_get.return_value.json.return_value = {'models': [{'name': 'llama3.2:latest'}, 'junk']}

        self.assertEqual(list_models(), ['llama3.2:latest'])
        mock_get.assert_called_once_with('http://ollama:11434/api/tags', timeout=5)

    @patch('extraction.service.textgen.requests.get')
    def test_unreachable(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('refused')

        with self.assertRaises(TextGenerationError) as ctx:
            list_models()

        self.assertIn('not reachable', str(ctx.exception))

    @patch('extraction.service.textgen.requests.get')
    def test_unexpected_payload(self, mock_get):
        mock_get.return_value = Mock()
        mock_get.return_value.json.return_value = ['llama3.2']

        with self.assertRaises(TextGenerationError):
            list_models()

    def test_model_installed(self):
        self.assertTrue(model_installed('llama3.2', ['llama3.2:latest']))
        self.assertTrue(model_installed('llama3.2', ['llama3.2:3b']))
        self.assertTrue(model_installed('llama3.2:3b', ['llama3.2:3b']))
        self.assertFalse(model_installed('llama3.2:1b', ['llama3.2:3b']))
        self.assertFalse(model_installed('llama3.2', ['mistral:latest']))


class RunStepTest(TestCase):
    @patch('extraction.service.textgen.translate_captions')
    def test_translate_ok(self, mock_translate):
        mock_translate.return_value = iter(['```srt\n1\n00:00:00,000 --> 00:00:02,500\n', 'Hola\n```'])

        step = run_step('translate', target_lang='es')

        self.assertTrue(step.ok)
        self.assertGreater(step.chars, 0)
        self.assertEqual(mock_translate.call_args[0][1], 'es')

    @patch('extraction.service.textgen.translate_captions', return_value=iter(['Lo siento, no puedo.']))
    def test_translate_without_timestamps_fails(self, mock_translate):
        step = run_step('translate')

        self.assertFalse(step.ok)
        self.assertIn('without SRT timestamps', step.error)

    @patch('extraction.service.textgen.rewrite_captions')
    def test_rewrite_ok(self, mock_rewrite):
        mock_rewrite.return_value = iter(['POV: ', 'pasta in five minutes'])

        step = run_step('rewrite', style='tiktok')

        self.assertTrue(step.ok)
        self.assertEqual(step.chars, len('POV: pasta in five minutes'))
        self.assertEqual(mock_rewrite.call_args[0][1], 'tiktok')

    @patch('extraction.service.textgen.rewrite_captions', return_value=iter(['  ', '\n']))
    def test_empty_rewrite_fails(self, mock_rewrite):
        step = run_step('rewrite')

        self.assertFalse(step.ok)
        self.assertEqual(step.error, 'Rewrite returned no content')

    @patch('extraction.service.textgen.rewrite_captions')
    def test_generation_error_is_reported(self, mock_rewrite):
        mock_rewrite.side_effect = TextGenerationError('Ollama error: out of memory')

        step = run_step('rewrite')

        self.assertFalse(step.ok)
        self.assertIn('out of memory', step.error)


@override_settings(VIDSCRIBE_OLLAMA_MODEL='llama3.2')
class CheckTextGenerationTest(TestCase):
    @patch('extraction.service.textgen.run_step')
    @patch('extraction.service.textgen.list_models', return_value=['llama3.2:latest'])
    def test_ready(self, mock_models, mock_step):
        mock_step.side_effect = lambda mode, **kwargs: StepCheck(mode, ok=True, chars=10)

        health = check_text_generation()

        self.assertTrue(health.ready)
        self.assertEqual([step.mode for step in health.steps], ['translate', 'rewrite'])

    @patch('extraction.service.textgen.run_step')
    @patch('extraction.service.textgen.list_models', return_value=['mistral:latest'])
    def test_model_missing_skips_generation(self, mock_models, mock_step):
        health = check_text_generation()

        self.assertTrue(health.reachable)
        self.assertFalse(health.ready)
        self.assertIn('ollama pull llama3.2', health.error)
        mock_step.assert_not_called()

    @patch('extraction.service.textgen.list_models')
    def test_unreachable(self, mock_models):
        mock_models.side_effect = TextGenerationError('Ollama not reachable at http://ollama:11434: refused')

        health = check_text_generation()

        self.assertFalse(health.reachable)
        self.assertFalse(health.ready)

    @patch('extraction.service.textgen.run_step')
    @patch('extraction.service.textgen.list_models', return_value=['llama3.2:latest'])
    def test_failed_step_is_not_ready(self, mock_models, mock_step):
        mock_step.return_value = StepCheck('translate', ok=False, error='Translation came back without SRT timestamps')

        health = check_text_generation(modes=('translate',))

        self.assertTrue(health.reachable)
        self.assertFalse(health.ready)

    @patch('extraction.service.textgen.run_step')
    @patch('extraction.service.textgen.list_models', return_value=['llama3.2:latest'])
    def test_models_only(self, mock_models, mock_step):
        health = check_text_generation(modes=())

        self.assertTrue(health.ready)
        mock_step.assert_not_called()
