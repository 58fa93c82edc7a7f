"""
Vocabulary pronunciation audio.

Audio is generated once per normalised word through ElevenLabs and stored as
an mp3 file under AUDIO_FOLDER; later requests are served from that cache.
"""
import hashlib
import os
import re
from dataclasses import dataclass

import requests
from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db, VocabularyAudio
import logging

logger = logging.getLogger(__name__)

MAX_WORD_LENGTH = 100
SLUG_PATTERN = re.compile(r'[^a-z0-9]+')


class AudioServiceUnavailable(Exception):
    """The text-to-speech provider could not produce audio"""


@dataclass(frozen=True)
class AudioResult:
    storage_key: str
    cached: bool


def normalize_word(word):
    return (word or '').strip().lower()


def storage_key_for(word, language='en'):
    """Filesystem-safe key, unique per word"""
    slug = SLUG_PATTERN.sub('-', word).strip('-')[:40] or 'word'
    digest = hashlib.sha1(word.encode('utf-8')).hexdigest()[:12]
    return f"{language}/{slug}-{digest}.mp3"


class AudioService:
    """Service for vocabulary text-to-speech"""

    def __init__(self):
        self.session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=5,
            pool_maxsize=10,
            max_retries=1
        )
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

    @staticmethod
    def audio_folder():
        folder = current_app.config.get('AUDIO_FOLDER', 'audio')
        if not os.path.isabs(folder):
            folder = os.path.join(current_app.root_path, folder)
        return folder

    def get_cached(self, word):
        return VocabularyAudio.query.filter_by(word=normalize_word(word)).first()

    def synthesize(self, text):
        """Raw mp3 bytes for `text`"""
        config = current_app.config
        api_key = config.get('ELEVENLABS_API_KEY')
        if not api_key:
            raise AudioServiceUnavailable('ElevenLabs API key not configured')

        url = f"{config['ELEVENLABS_API_URL']}/{config['ELEVENLABS_VOICE_ID']}"
        try:
            response = self.session.post(
                url,
                headers={
                    'Accept': 'audio/mpeg',
                    'Content-Type': 'application/json',
                    'xi-api-key': api_key
                },
                json={
                    'text': text,
                    'model_id': config['ELEVENLABS_MODEL_ID'],
                    'voice_settings': {
                        'stability': 0.5,
                        'similarity_boost': 0.5
                    }
                },
                timeout=config.get('ELEVENLABS_TIMEOUT', 20)
            )
        except requests.RequestException as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise AudioServiceUnavailable('Text-to-speech service is unreachable') from e

        if not response.ok:
            logger.error(f"ElevenLabs API error: {response.status_code} {response.text[:200]}")
            raise AudioServiceUnavailable(f'Text-to-speech service error ({response.status_code})')

        if not response.content:
            raise AudioServiceUnavailable('Text-to-speech service returned no audio')
        return response.content

    def get_or_create(self, word, language='en'):
        """Audio for a word, generating it on first request

        Returns:
            AudioResult with the storage key and whether it came from cache
        """
        normalized = normalize_word(word)
        if not normalized or len(normalized) > MAX_WORD_LENGTH:
            raise ValueError('Word must be between 1 and 100 characters')

        existing = self.get_cached(normalized)
        if existing:
            return AudioResult(storage_key=existing.storage_key, cached=True)

        audio = self.synthesize(normalized)

        storage_key = storage_key_for(normalized, language)
        path = os.path.join(self.audio_folder(), storage_key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(audio)

        record = VocabularyAudio(word=normalized, language=language, storage_key=storage_key)
        db.session.add(record)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request stored the same word first
            db.session.rollback()
            existing = self.get_cached(normalized)
            return AudioResult(storage_key=existing.storage_key, cached=True)

        logger.info(f"Generated audio for '{normalized}' ({len(audio)} bytes)")
        return AudioResult(storage_key=storage_key, cached=False)


audio_service = AudioService()
