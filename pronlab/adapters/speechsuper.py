"""
pronlab/adapters/speechsuper.py
================================
SpeechSuper Pronunciation Assessment Adapter - PronLab

Responsibility:
    - Upload audio as-is (SpeechSuper accepts wav / mp3 / amr / opus)
      together with the reference text, core type and language
    - Map result.overall plus word, phoneme and tone details into a
      StandardizedResult

SpeechSuper has no status endpoint: the connection check only reports
whether an API key is configured.
"""

import io
import logging

from pronlab.adapters.base import (
    AdapterError,
    Capabilities,
    StandardizedResult,
    parse_json,
    send_request,
)
from pronlab.audio.codec import AudioSample

logger = logging.getLogger("pronlab.adapters.speechsuper")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

VENDOR = "speechsuper"
SPEECHSUPER_API_BASE = "https://api.speechsuper.com"
SPEECHSUPER_EVAL_ENDPOINT = f"{SPEECHSUPER_API_BASE}/eva/api"
DEFAULT_LANGUAGE = "en"

# BCP 47 tag -> SpeechSuper language code
_LANGUAGE_CODE_MAP: dict[str, str] = {
    "en-US": "en",
    "zh-CN": "zh-cmn",
    "zh-TW": "zh-cmn",
    "ja-JP": "jp",
    "ko-KR": "ko",
}

_CORE_TYPE_CHINESE = "word.eval.cn"
_CORE_TYPE_DEFAULT = "word.eval"

_MIME_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "webm": "audio/webm",
    "ogg": "audio/ogg",
    "opus": "audio/opus",
    "amr": "audio/amr",
}

_CAPABILITIES = Capabilities(
    languages=frozenset({"en", "zh-cmn", "jp", "ko", "es", "de", "fr", "ru"}),
    features=frozenset({
        "pronunciation", "fluency", "integrity", "rhythm",
        "phoneme-level", "tone-analysis", "initial-final-sounds",
    }),
    audio_formats=frozenset({"wav", "mp3", "amr", "opus"}),
    max_duration_seconds=60,
)


class SpeechSuperAdapter:
    """SpeechSuper word/sentence evaluation over multipart HTTP."""

    name = VENDOR

    def __init__(self, api_key: str, app_id: str = "default", timeout: float = 30.0):
        self.api_key = api_key
        self.app_id = app_id
        self.timeout = timeout

    def test(self, audio: AudioSample, reference_text: str, language: str = "en-US") -> StandardizedResult:
        if not self.api_key:
            raise AdapterError(VENDOR, "SPEECHSUPER_KEY is not configured.")

        ss_lang = self.map_language(language)
        filename = audio.filename or "audio.wav"
        mime = _MIME_TYPES.get(audio.format, "application/octet-stream")

        resp = send_request(
            VENDOR,
            "POST",
            SPEECHSUPER_EVAL_ENDPOINT,
            headers={
                "X-API-Key": self.api_key,
                "X-App-Id": self.app_id,
            },
            files={"audio": (filename, io.BytesIO(audio.data), mime)},
            data={
                "text": reference_text,
                "coreType": core_type_for(ss_lang),
                "language": ss_lang,
            },
            timeout=self.timeout,
        )
        return normalize_response(parse_json(VENDOR, resp))

    def test_connection(self) -> bool:
        return bool(self.api_key)

    def get_capabilities(self) -> Capabilities:
        return _CAPABILITIES

    def map_language(self, language: str) -> str:
        return _LANGUAGE_CODE_MAP.get(language, DEFAULT_LANGUAGE)


def core_type_for(ss_lang: str) -> str:
    """Mandarin uses the Chinese evaluator; every other language the default."""
    return _CORE_TYPE_CHINESE if ss_lang == "zh-cmn" else _CORE_TYPE_DEFAULT


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def normalize_response(data: dict) -> StandardizedResult:
    """
    Map a SpeechSuper evaluation body into a StandardizedResult.

    Raises:
        AdapterError: If the body reports an error or has no result block.
    """
    if not isinstance(data, dict):
        raise AdapterError(VENDOR, "Response body is not a JSON object")
    if data.get("error"):
        raise AdapterError(VENDOR, f"SpeechSuper error: {data['error']}")

    result = data.get("result")
    if not isinstance(result, dict):
        raise AdapterError(VENDOR, "No result block in response")
    words = result.get("words") or []

    word_details = [
        {
            "word": w.get("word"),
            "score": (w.get("scores") or {}).get("overall"),
            "phonemes": [
                {
                    "phone": p.get("phone"),
                    "score": p.get("pronunciation"),
                    "sound_like": p.get("sound_like"),
                }
                for p in w.get("phonemes") or []
            ],
        }
        for w in words
    ]

    return StandardizedResult.build(
        score=result.get("overall"),
        details={
            "pronunciation": result.get("pronunciation"),
            "fluency": result.get("fluency"),
            "integrity": result.get("integrity"),
            "rhythm": result.get("rhythm"),
            "words": word_details or None,
            "tones": _tone_info(words),
        },
        raw=data,
    )


def _tone_info(words: list[dict]) -> dict | None:
    """Tone scores for Mandarin, taken from the first word when present."""
    if not words:
        return None
    tone_scores = words[0].get("tone_scores")
    if not tone_scores:
        return None
    return {
        "tone_score": tone_scores.get("overall"),
        "tones": tone_scores.get("details"),
    }
