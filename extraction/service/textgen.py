"""Ollama service for caption translation and rewriting."""

import json
import re
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import requests
from django.conf import settings

from extraction.service.subtitles import TIMESTAMP_LINE, srt_to_plain_text

REWRITE_STYLES = {
    'tiktok': (
        'Viral short-video mode: open with a hook in the first three seconds, keep a fast '
        'rhythm, use emotionally charged words and very conversational language.'
    ),
    'youtube': (
        'Long-form mode: structured content with a clear line of argument and a high density '
        'of useful information, suitable for an in-depth breakdown or a long video script.'
    ),
    'redbook': (
        'Lifestyle recommendation mode: warm and friendly tone, generous use of emoji, '
        'written to encourage saves, likes and a sense of shared experience.'
    ),
    'emotional': (
        'Emotional resonance mode: slow pacing with frequent memorable one-liners, '
        'suited to storytelling and personal accounts.'
    ),
    'script': (
        'Storyboard mode: output a professional shot-by-shot script with visual and '
        'audio suggestions for each scene.'
    ),
}

LANGUAGE_NAMES = {
    'en': 'English',
    'zh-CN': 'Simplified Chinese',
    'zh': 'Chinese',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
    'ja': 'Japanese',
    'ko': 'Korean',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'it': 'Italian',
    'ar': 'Arabic',
    'hi': 'Hindi',
}


class TextGenerationError(Exception):
    """Raised when the text-generation service fails mid-task"""

    pass


def build_translation_prompt(srt: str, target_lang: str) -> str:
    language = LANGUAGE_NAMES.get(target_lang, target_lang)
    return f"""You are an expert subtitle translator. Translate the following SRT content into {language} ({target_lang}).

Rules:
1. Keep the exact index numbers and timestamp format (e.g., "1\\n00:00:00,000 --> 00:00:01,000").
2. Only translate the text content between timestamps.
3. Do not include any introductory or concluding remarks.
4. Maintain the original line breaks and empty lines between subtitle entries.
5. Return only the SRT format text, no explanations or additional text.

SRT content:
{srt}"""


def build_rewrite_prompt(srt: str, style: str, instruction: Optional[str] = None) -> str:
    style_text = REWRITE_STYLES.get(style, REWRITE_STYLES['tiktok'])
    if instruction and instruction.strip():
        custom = (
            f"The user asked for the following, which takes priority over the style "
            f"if they conflict: {instruction.strip()}"
        )
    else:
        custom = "Apply the style freely."

    return f"""You are an expert short-video copywriter. Rewrite the script below.

Guidelines:
1. {style_text}
2. Avoid stock filler phrases such as "in conclusion" or "first of all"; prefer rhetorical questions and informal spoken language so it reads as written by a person.
3. {custom}

Original script:
\"\"\"
{srt_to_plain_text(srt)}
\"\"\"

Output only the rewritten script, with no explanation, prefix or suffix."""


def clean_translation(text: str) -> str:
    """Strip code fences and chatter the model adds around SRT output"""
    cleaned = text.strip()
    cleaned = re.sub(r'```[a-zA-Z]*\n?', '', cleaned).replace('```', '')
    cleaned = re.sub(
        r"^(Here is|Here's|The translated|Translation:|Translated SRT:|The following is|Below is)[^\n]*\n",
        '',
        cleaned.strip(),
        flags=re.IGNORECASE,
    )
    first_entry = re.search(r'\d+\s*\n\s*\d{2}:\d{2}:\d{2}[.,]\d{3}\s*-->', cleaned)
    if first_entry and first_entry.start() > 0:
        cleaned = cleaned[first_entry.start():]
    return cleaned.strip() + '\n'


def stream_text(prompt: str, temperature: float = 0.3) -> Iterator[str]:
    """
    Stream a completion from Ollama.

    Yields:
        str: response chunks as they arrive

    Raises:
        TextGenerationError: the service is unreachable or reports an error
    """
    host = settings.VIDSCRIBE_OLLAMA_HOST
    model = settings.VIDSCRIBE_OLLAMA_MODEL
    payload = {
        'model': model,
        'prompt': prompt,
        'stream': True,
        'options': {'temperature': temperature},
    }

    try:
        with requests.post(
            f"{host}/api/generate",
            json=payload,
            stream=True,
            timeout=settings.VIDSCRIBE_OLLAMA_TIMEOUT_SECONDS,
        ) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if not line:
                    continue
                data = json.loads(line)
                if data.get('error'):
                    raise TextGenerationError(f"Ollama error: {data['error']}")
                chunk = data.get('response', '')
                if chunk:
                    yield chunk
                if data.get('done'):
                    break
    except requests.RequestException as e:
        raise TextGenerationError(f"Ollama request failed: {e}") from e
    except ValueError as e:
        raise TextGenerationError(f"Ollama returned invalid JSON: {e}") from e


def translate_captions(srt: str, target_lang: str) -> Iterator[str]:
    return stream_text(build_translation_prompt(srt, target_lang), temperature=0.3)


def rewrite_captions(srt: str, style: str, instruction: Optional[str] = None) -> Iterator[str]:
    return stream_text(build_rewrite_prompt(srt, style, instruction), temperature=0.7)


# Health check

SAMPLE_CAPTIONS = (
    '1\n00:00:00,000 --> 00:00:02,500\nHello and welcome back to the channel.\n\n'
    '2\n00:00:02,500 --> 00:00:05,000\nToday we are cooking a quick pasta.\n'
)


@dataclass
class StepCheck:
    """Outcome of one translate or rewrite run on SAMPLE_CAPTIONS"""

    mode: str
    ok: bool
    chars: int = 0
    seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class TextGenHealth:
    reachable: bool
    models: List[str] = field(default_factory=list)
    steps: List[StepCheck] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.reachable and self.error is None and all(step.ok for step in self.steps)


def list_models() -> List[str]:
    """
    Names of the models installed on the Ollama host.

    Raises:
        TextGenerationError: the host is unreachable or answers garbage
    """
    host = settings.VIDSCRIBE_OLLAMA_HOST
    try:
        response = requests.get(f"{host}/api/tags", timeout=5)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        raise TextGenerationError(f"Ollama not reachable at {host}: {e}") from e
    except ValueError as e:
        raise TextGenerationError(f"Ollama returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise TextGenerationError('Ollama returned an unexpected model list')
    return [m.get('name', '') for m in data.get('models', []) if isinstance(m, dict)]


def model_installed(model: str, installed: List[str]) -> bool:
    """Match 'name' against 'name:latest', and an untagged name against any tag"""
    if model in installed or f"{model}:latest" in installed:
        return True
    return ':' not in model and any(name.startswith(f"{model}:") for name in installed)


def run_step(mode: str, target_lang: str = 'es', style: str = 'tiktok') -> StepCheck:
    """
    Run the translate or rewrite path on SAMPLE_CAPTIONS.

    A translation must come back as SRT once cleaned; a rewrite must not be
    empty.
    """
    started = time.monotonic()

    def elapsed():
        return round(time.monotonic() - started, 1)

    try:
        if mode == 'translate':
            output = clean_translation(''.join(translate_captions(SAMPLE_CAPTIONS, target_lang)))
            if not TIMESTAMP_LINE.search(output):
                raise TextGenerationError('Translation came back without SRT timestamps')
        else:
            output = ''.join(rewrite_captions(SAMPLE_CAPTIONS, style)).strip()
            if not output:
                raise TextGenerationError('Rewrite returned no content')
    except TextGenerationError as e:
        return StepCheck(mode, ok=False, seconds=elapsed(), error=str(e))
    return StepCheck(mode, ok=True, chars=len(output), seconds=elapsed())


def check_text_generation(modes=('translate', 'rewrite'), target_lang='es', style='tiktok') -> TextGenHealth:
    """
    Check that the configured model is installed, then run each mode once.

    Pass modes=() to stop after the model check.
    """
    model = settings.VIDSCRIBE_OLLAMA_MODEL
    try:
        installed = list_models()
    except TextGenerationError as e:
        return TextGenHealth(reachable=False, error=str(e))

    if not model_installed(model, installed):
        return TextGenHealth(
            reachable=True,
            models=installed,
            error=f"Model '{model}' not found. Run: ollama pull {model}",
        )

    steps = [run_step(mode, target_lang=target_lang, style=style) for mode in modes]
    return TextGenHealth(reachable=True, models=installed, steps=steps)
