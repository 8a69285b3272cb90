"""
Extraction provider clients.

A provider client makes exactly one attempt and never raises for expected
failures: it returns a ProviderResult whose classification says what went
wrong, so the fallback orchestrator can decide whether to try the backup.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

import requests
import yt_dlp

from extraction.service.normalize import NormalizedMedia, dig, normalize_metadata, to_url
from extraction.service.subtitles import to_srt, vtt_to_srt

SUCCESS = 'success'
QUOTA = 'quota'
NO_DATA = 'no_data'
NETWORK = 'network'
OTHER = 'other'

OUTPUT_CAPTIONS = 'captions'
OUTPUT_MEDIA_FILE = 'media_file'

QUOTA_MARKERS = ('quota', 'limit', 'exceeded', 'free plan disabled')


@dataclass
class ProviderResult:
    """Outcome of one provider attempt"""

    provider: str
    classification: str
    data: Optional[NormalizedMedia] = None
    message: str = ''

    @property
    def success(self) -> bool:
        return self.classification == SUCCESS


def detect_platform(url):
    """
    Return 'youtube' or 'tiktok' for a supported URL, else None.
    """
    try:
        host = (urlparse(url).hostname or '').lower()
    except ValueError:
        return None
    if host == 'youtu.be' or host == 'youtube.com' or host.endswith('.youtube.com'):
        return 'youtube'
    if host == 'tiktok.com' or host.endswith('.tiktok.com'):
        return 'tiktok'
    return None


def youtube_video_id(url):
    """Extract the video id from watch, short-link, embed and Shorts URLs"""
    parsed = urlparse(url)
    host = (parsed.hostname or '').lower()
    if host == 'youtu.be':
        return parsed.path.strip('/').split('/')[0] or None
    if 'v' in parse_qs(parsed.query):
        return parse_qs(parsed.query)['v'][0]
    match = re.match(r'^/(?:shorts|embed|live)/([^/?#&]+)', parsed.path)
    if match:
        return match.group(1)
    return None


def tiktok_video_id(url):
    """Extract the numeric video id from a TikTok URL, or None for short links"""
    match = re.search(r'/video/(\d+)', urlparse(url).path)
    return match.group(1) if match else None


class RapidAPIClient:
    """
    HTTP JSON extraction API behind the RapidAPI gateway.
    """

    def __init__(self, name, host, api_key, timeout=15,
                 captions_path='/api/v1/get-transcript-v2',
                 media_path='/api/v1/get-video-download'):
        self.name = name
        self.host = host
        self.api_key = api_key
        self.timeout = timeout
        self.captions_path = captions_path
        self.media_path = media_path

    def _params(self, url, platform):
        if platform == 'youtube':
            video_id = youtube_video_id(url)
            if video_id:
                return {'video_id': video_id, 'platform': 'youtube'}
        return {'url': url, 'platform': platform}

    def fetch(self, url, output_kind):
        platform = detect_platform(url)
        path = self.media_path if output_kind == OUTPUT_MEDIA_FILE else self.captions_path

        try:
            response = requests.get(
                f'https://{self.host}{path}',
                params=self._params(url, platform),
                headers={
                    'x-rapidapi-key': self.api_key,
                    'x-rapidapi-host': self.host,
                },
                timeout=self.timeout,
            )
        except requests.Timeout:
            return ProviderResult(self.name, NETWORK, message='Request timed out')
        except requests.RequestException as e:
            return ProviderResult(self.name, NETWORK, message=f'Network error: {e}')

        if response.status_code == 429:
            return ProviderResult(self.name, QUOTA, message='Rate limit exceeded')
        if response.status_code == 403:
            return ProviderResult(self.name, QUOTA, message='Quota exceeded or plan disabled')
        if not response.ok:
            return ProviderResult(
                self.name, OTHER, message=f'HTTP {response.status_code}: {response.reason}'
            )

        try:
            data = response.json()
        except ValueError:
            return ProviderResult(self.name, OTHER, message='Response is not JSON')
        if not isinstance(data, dict):
            return ProviderResult(self.name, OTHER, message='Unexpected response shape')

        error_text = str(data.get('error') or data.get('message') or '').lower()
        if any(marker in error_text for marker in QUOTA_MARKERS):
            return ProviderResult(self.name, QUOTA, message=error_text)

        metadata = data.get('data') if isinstance(data.get('data'), dict) else data

        if output_kind == OUTPUT_MEDIA_FILE:
            download_url = to_url(
                dig(metadata, 'download_url', 'video_url', 'play', 'hdplay', 'medias.0.url', 'url')
            )
            if not download_url:
                return ProviderResult(self.name, NO_DATA, message='No download URL in response')
            captions = to_srt(dig(metadata, 'subtitles', 'transcript'))
            media = normalize_metadata(metadata, platform, captions=captions, download_url=download_url)
            return ProviderResult(self.name, SUCCESS, data=media)

        captions = to_srt(dig(metadata, 'transcript', 'transcription', 'subtitles', 'text'))
        if not captions:
            return ProviderResult(self.name, NO_DATA, message='No transcript available in response')
        media = normalize_metadata(metadata, platform, captions=captions)
        return ProviderResult(self.name, SUCCESS, data=media)


class YtDlpClient:
    """
    Extraction through yt-dlp, without downloading the media itself.
    """

    def __init__(self, name, timeout=60, proxy=None, caption_langs=('en',)):
        self.name = name
        self.timeout = timeout
        self.proxy = proxy
        self.caption_langs = caption_langs

    def _extract_info(self, url):
        ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'socket_timeout': self.timeout,
        }
        if self.proxy:
            ydl_opts['proxy'] = self.proxy

        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    def _caption_track(self, info):
        """Pick a VTT track URL: manual subtitles before automatic captions"""
        language = (info.get('language') or '').split('-')[0]
        preferred = [language] if language else []
        preferred += [lang for lang in self.caption_langs if lang not in preferred]

        for source in ('subtitles', 'automatic_captions'):
            tracks = info.get(source) or {}
            candidates = [lang for lang in preferred if lang in tracks] + sorted(tracks)
            for lang in candidates:
                for fmt in tracks.get(lang) or []:
                    if fmt.get('ext') == 'vtt' and fmt.get('url'):
                        return lang, fmt['url']
        return None, None

    def _fetch_captions(self, info):
        lang, track_url = self._caption_track(info)
        if not track_url:
            return None, None
        response = requests.get(track_url, timeout=self.timeout)
        response.raise_for_status()
        return vtt_to_srt(response.text) or None, lang

    def _download_url(self, info):
        if info.get('url'):
            return info['url']
        formats = [
            f for f in info.get('formats') or []
            if f.get('url') and f.get('vcodec') not in (None, 'none') and f.get('acodec') not in (None, 'none')
        ]
        if not formats:
            return None
        return formats[-1]['url']

    def fetch(self, url, output_kind):
        platform = detect_platform(url)
        try:
            info = self._extract_info(url)
            if not info:
                return ProviderResult(self.name, NO_DATA, message='No metadata returned')

            captions, lang = None, None
            download_url = None
            if output_kind == OUTPUT_MEDIA_FILE:
                download_url = to_url(self._download_url(info))
                if not download_url:
                    return ProviderResult(self.name, NO_DATA, message='No downloadable format')
            else:
                captions, lang = self._fetch_captions(info)
                if not captions:
                    return ProviderResult(self.name, NO_DATA, message='No captions available')
        except requests.Timeout:
            return ProviderResult(self.name, NETWORK, message='Caption request timed out')
        except requests.RequestException as e:
            return ProviderResult(self.name, NETWORK, message=f'Caption request failed: {e}')
        except yt_dlp.utils.DownloadError as e:
            return ProviderResult(self.name, classify_ytdlp_error(str(e)), message=str(e))

        media = normalize_metadata(info, platform, captions=captions, download_url=download_url)
        if not media.source_lang and lang:
            media.source_lang = lang
        return ProviderResult(self.name, SUCCESS, data=media)


def classify_ytdlp_error(message):
    """Map a yt-dlp error message to a classification"""
    text = message.lower()
    if '429' in text or 'too many requests' in text or 'quota' in text:
        return QUOTA
    if 'timed out' in text or 'timeout' in text or 'connection' in text or 'network' in text:
        return NETWORK
    if any(marker in text for marker in ('unavailable', 'unsupported url', 'private video', 'not found', '404')):
        return NO_DATA
    return OTHER


def build_provider(config, api_key='', proxy=None):
    """
    Build a provider client from a VIDSCRIBE_PROVIDERS entry.

    Args:
        config: dict with backend, name, host and timeout keys
    """
    backend = config.get('backend')
    name = config.get('name') or backend
    timeout = config.get('timeout') or 30

    if backend == 'rapidapi':
        kwargs = {}
        if config.get('captions_path'):
            kwargs['captions_path'] = config['captions_path']
        if config.get('media_path'):
            kwargs['media_path'] = config['media_path']
        return RapidAPIClient(name, config.get('host', ''), api_key, timeout=timeout, **kwargs)
    if backend == 'ytdlp':
        return YtDlpClient(name, timeout=timeout, proxy=proxy)
    raise ValueError(f'Unknown provider backend: {backend}')
