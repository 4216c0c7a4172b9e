"""
pronlab/adapters/azure.py
==========================
Azure Speech Pronunciation Assessment Adapter - PronLab

Responsibility:
    - Convert audio to 16 kHz mono, 16-bit PCM WAV (Azure's REST endpoint
      accepts WAV only)
    - Call the short-audio recognition endpoint with a
      Pronunciation-Assessment header
    - Map NBest[0].PronunciationAssessment into a StandardizedResult

This module does NOT:
    - Use the Speech SDK or streaming recognition
    - Retry failed calls
"""

import base64
import json
import logging

import requests

from pronlab.adapters.base import (
    AdapterError,
    Capabilities,
    StandardizedResult,
    parse_json,
    send_request,
)
from pronlab.audio.codec import AudioSample, AudioError, prepare_wav

logger = logging.getLogger("pronlab.adapters.azure")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

VENDOR = "azure"
RECOGNITION_PATH = "/speech/recognition/conversation/cognitiveservices/v1"
AZURE_SAMPLE_RATE = 16000
DEFAULT_LANGUAGE = "en-US"

SUPPORTED_LANGUAGES: frozenset[str] = frozenset({
    "en-US", "en-GB", "en-AU", "en-CA", "en-IN",
    "zh-CN", "zh-TW", "zh-HK",
    "ja-JP", "ko-KR",
    "es-ES", "es-MX",
    "fr-FR", "fr-CA",
    "de-DE", "it-IT", "pt-BR", "ru-RU",
})

_CAPABILITIES = Capabilities(
    languages=SUPPORTED_LANGUAGES,
    features=frozenset({
        "pronunciation", "accuracy", "fluency", "completeness",
        "phoneme-level", "word-level",
    }),
    audio_formats=frozenset({"wav", "mp3", "ogg"}),
    max_duration_seconds=60,
)

_ASSESSMENT_CONFIG = {
    "gradingSystem": "HundredMark",
    "granularity": "Phoneme",
    "dimension": "Comprehensive",
    "enableMiscue": True,
}


class AzureAdapter:
    """Azure Speech Services pronunciation assessment over REST."""

    name = VENDOR

    def __init__(self, subscription_key: str, region: str = "eastus", timeout: float = 30.0):
        self.subscription_key = subscription_key
        self.region = region
        self.timeout = timeout
        self.endpoint = f"https://{region}.stt.speech.microsoft.com"

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    def test(self, audio: AudioSample, reference_text: str, language: str = DEFAULT_LANGUAGE) -> StandardizedResult:
        """
        Assess ``audio`` against ``reference_text``.

        Raises:
            AdapterError: On audio conversion failure, transport failure,
                non-2xx status, or a response without an assessment block.
        """
        if not self.subscription_key:
            raise AdapterError(VENDOR, "AZURE_KEY is not configured.")

        try:
            wav_bytes = prepare_wav(audio, sample_rate=AZURE_SAMPLE_RATE, mono=True)
        except AudioError as exc:
            raise AdapterError(VENDOR, f"audio conversion failed: {exc}") from exc

        azure_lang = self.map_language(language)
        logger.debug("Sending %d bytes of WAV to Azure (%s).", len(wav_bytes), azure_lang)

        resp = send_request(
            VENDOR,
            "POST",
            f"{self.endpoint}{RECOGNITION_PATH}",
            params={"language": azure_lang},
            headers={
                "Ocp-Apim-Subscription-Key": self.subscription_key,
                "Content-Type": "audio/wav",
                "Accept": "application/json",
                "Pronunciation-Assessment": assessment_header(reference_text),
            },
            data=wav_bytes,
            timeout=self.timeout,
        )
        return normalize_response(parse_json(VENDOR, resp))

    def test_connection(self) -> bool:
        """
        GET the recognition endpoint. Azure answers 405 to a GET once the
        key is accepted, so 405 counts as success.

        Raises:
            AdapterError: On transport failure.
        """
        if not self.subscription_key:
            return False
        try:
            resp = requests.get(
                f"{self.endpoint}{RECOGNITION_PATH}",
                params={"language": DEFAULT_LANGUAGE},
                headers={"Ocp-Apim-Subscription-Key": self.subscription_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AdapterError(VENDOR, f"connection test failed: {exc}") from exc
        return resp.status_code == 405 or resp.ok

    def get_capabilities(self) -> Capabilities:
        return _CAPABILITIES

    def map_language(self, language: str) -> str:
        """Supported locales pass through; anything else falls back to en-US."""
        if language in SUPPORTED_LANGUAGES:
            return language
        logger.info("Azure has no locale '%s' - falling back to %s.", language, DEFAULT_LANGUAGE)
        return DEFAULT_LANGUAGE


# ---------------------------------------------------------------------------
# Wire helpers
# ---------------------------------------------------------------------------


def assessment_header(reference_text: str) -> str:
    """Base64-encoded JSON value for the Pronunciation-Assessment header."""
    config = {"referenceText": reference_text, **_ASSESSMENT_CONFIG}
    payload = json.dumps(config, ensure_ascii=False).encode("utf-8")
    return base64.b64encode(payload).decode("ascii")


def normalize_response(data: dict) -> StandardizedResult:
    """
    Map an Azure detailed recognition response into a StandardizedResult.

    Raises:
        AdapterError: If NBest[0].PronunciationAssessment is missing.
    """
    if not isinstance(data, dict):
        raise AdapterError(VENDOR, "Response body is not a JSON object")

    nbest = data.get("NBest") or []
    best = nbest[0] if nbest else {}
    assessment = best.get("PronunciationAssessment")
    if not assessment:
        raise AdapterError(VENDOR, "No pronunciation assessment in response")

    words = [
        {
            "word": w.get("Word"),
            "accuracy": (w.get("PronunciationAssessment") or {}).get("AccuracyScore"),
            "error": (w.get("PronunciationAssessment") or {}).get("ErrorType"),
        }
        for w in best.get("Words") or []
    ]

    return StandardizedResult.build(
        score=assessment.get("PronScore"),
        details={
            "accuracy": assessment.get("AccuracyScore"),
            "fluency": assessment.get("FluencyScore"),
            "completeness": assessment.get("CompletenessScore"),
            "pronunciation": assessment.get("PronScore"),
            "words": words or None,
        },
        raw=data,
    )
