"""
pronlab/adapters/generic.py
============================
Generic JSON Adapter - PronLab

A configurable adapter for trialling a new vendor before writing a
dedicated one: POSTs base64 audio, reference text and language as JSON
with a bearer token, and reads ``overall_score`` / ``accuracy`` /
``fluency`` / ``pronunciation`` from the response.
"""

import logging

import requests

from pronlab.adapters.base import (
    AdapterError,
    Capabilities,
    StandardizedResult,
    parse_json,
    send_request,
)
from pronlab.audio.codec import AudioSample, to_base64

logger = logging.getLogger("pronlab.adapters.generic")

DEFAULT_LANGUAGES: frozenset[str] = frozenset({"en-US", "en-GB"})


class GenericJSONAdapter:
    """Bearer-token JSON vendor at a configurable endpoint."""

    def __init__(
        self,
        name: str,
        api_key: str,
        endpoint: str,
        languages: frozenset[str] = DEFAULT_LANGUAGES,
        default_language: str = "en-US",
        timeout: float = 30.0,
    ):
        if not endpoint:
            raise ValueError("GenericJSONAdapter requires an endpoint URL.")
        self.name = name
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.languages = frozenset(languages)
        self.default_language = default_language
        self.timeout = timeout

    def test(self, audio: AudioSample, reference_text: str, language: str = "en-US") -> StandardizedResult:
        resp = send_request(
            self.name,
            "POST",
            self.endpoint,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "audio": to_base64(audio.data),
                "format": audio.format,
                "text": reference_text,
                "language": self.map_language(language),
            },
            timeout=self.timeout,
        )
        return self.normalize_response(parse_json(self.name, resp))

    def normalize_response(self, data: dict) -> StandardizedResult:
        if not isinstance(data, dict):
            raise AdapterError(self.name, "Response body is not a JSON object")
        return StandardizedResult.build(
            score=data.get("overall_score"),
            details={
                "accuracy": data.get("accuracy"),
                "fluency": data.get("fluency"),
                "pronunciation": data.get("pronunciation"),
            },
            raw=data,
        )

    def test_connection(self) -> bool:
        try:
            resp = requests.get(
                f"{self.endpoint}/status",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AdapterError(self.name, f"connection test failed: {exc}") from exc
        return resp.ok

    def get_capabilities(self) -> Capabilities:
        return Capabilities(
            languages=self.languages,
            features=frozenset({"pronunciation", "fluency"}),
            audio_formats=frozenset({"wav", "mp3", "webm"}),
            max_duration_seconds=60,
        )

    def map_language(self, language: str) -> str:
        return language if language in self.languages else self.default_language
