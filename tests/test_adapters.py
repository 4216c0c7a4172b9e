"""
tests/test_adapters.py
=======================
Vendor Adapter Tests - PronLab

Test categories:
    1. StandardizedResult invariants (score range, no None details)
    2. Azure: request shape, response mapping, language fallback,
       connection check semantics (405 counts as success)
    3. SpeechSuper: language / core-type mapping, word + phoneme + tone
       mapping, vendor-reported errors
    4. Generic JSON adapter
    5. Registry construction

All tests are OFFLINE - ``requests`` is patched; no vendor is contacted.
"""

import base64
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import numpy as np
import requests

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pronlab.adapters import azure, speechsuper
from pronlab.adapters.azure import AzureAdapter
from pronlab.adapters.base import AdapterError, StandardizedResult, VendorAdapter
from pronlab.adapters.generic import GenericJSONAdapter
from pronlab.adapters.registry import AdapterRegistry, build_registry
from pronlab.adapters.speechsuper import SpeechSuperAdapter
from pronlab.audio.codec import AudioSample, decode, encode_wav, make_buffer
from pronlab.config import Settings


# ===================================================================
# Test fixtures
# ===================================================================


def _wav_sample(rate: int = 16000) -> AudioSample:
    t = np.arange(rate // 10) / rate
    pcm = make_buffer(0.3 * np.sin(2 * np.pi * 220 * t), rate)
    return AudioSample(data=encode_wav(pcm), container="wav", filename="take1.wav")


def _response(status: int = 200, body=None, text: str = ""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    resp.reason = "Unauthorized" if status == 401 else "OK"
    resp.json.return_value = body if body is not None else {}
    return resp


AZURE_BODY = {
    "RecognitionStatus": "Success",
    "NBest": [
        {
            "PronunciationAssessment": {
                "AccuracyScore": 92.0,
                "FluencyScore": 88.0,
                "CompletenessScore": 100.0,
                "PronScore": 90.4,
            },
            "Words": [
                {"Word": "hello", "PronunciationAssessment": {"AccuracyScore": 95.0, "ErrorType": "None"}},
                {"Word": "world", "PronunciationAssessment": {"AccuracyScore": 61.0, "ErrorType": "Mispronunciation"}},
            ],
        }
    ],
}

SPEECHSUPER_BODY = {
    "result": {
        "overall": 78,
        "pronunciation": 80,
        "fluency": 75,
        "integrity": 100,
        "words": [
            {
                "word": "你好",
                "scores": {"overall": 78},
                "phonemes": [{"phone": "n", "pronunciation": 90, "sound_like": "n"}],
                "tone_scores": {"overall": 70, "details": [3, 3]},
            }
        ],
    }
}


# ===================================================================
# 1. StandardizedResult
# ===================================================================


class TestStandardizedResult(unittest.TestCase):

    def test_build_drops_none_details(self):
        result = StandardizedResult.build(80, {"fluency": 70, "rhythm": None}, raw={})
        self.assertEqual(result.details, {"fluency": 70})

    def test_build_clamps_score(self):
        self.assertEqual(StandardizedResult.build(120, {}, None).score, 100.0)
        self.assertEqual(StandardizedResult.build(-3, {}, None).score, 0.0)

    def test_build_non_numeric_score_is_absent(self):
        self.assertIsNone(StandardizedResult.build("n/a", {}, None).score)
        self.assertIsNone(StandardizedResult.build(None, {}, None).score)

    def test_direct_construction_validates(self):
        with self.assertRaises(ValueError):
            StandardizedResult(score=101.0)
        with self.assertRaises(ValueError):
            StandardizedResult(score=50.0, details={"fluency": None})

    def test_details_are_read_only(self):
        source = {"fluency": 70}
        result = StandardizedResult.build(80, source, raw={})
        with self.assertRaises(TypeError):
            result.details["fluency"] = 10
        source["fluency"] = 10
        self.assertEqual(result.details["fluency"], 70)
        self.assertEqual(result.to_dict()["details"], {"fluency": 70})

    def test_adapters_satisfy_protocol(self):
        self.assertIsInstance(AzureAdapter("key"), VendorAdapter)
        self.assertIsInstance(SpeechSuperAdapter("key"), VendorAdapter)
        self.assertIsInstance(GenericJSONAdapter("x", "k", "https://example.com"), VendorAdapter)


# ===================================================================
# 2. Azure
# ===================================================================


class TestAzureMapping(unittest.TestCase):

    def test_maps_scores_and_words(self):
        result = azure.normalize_response(AZURE_BODY)
        self.assertEqual(result.score, 90.4)
        self.assertEqual(result.details["accuracy"], 92.0)
        self.assertEqual(result.details["fluency"], 88.0)
        self.assertEqual(result.details["completeness"], 100.0)
        self.assertEqual(result.details["pronunciation"], 90.4)
        self.assertEqual(
            result.details["words"][1],
            {"word": "world", "accuracy": 61.0, "error": "Mispronunciation"},
        )
        self.assertIs(result.raw, AZURE_BODY)

    def test_missing_assessment_raises(self):
        with self.assertRaises(AdapterError) as ctx:
            azure.normalize_response({"RecognitionStatus": "NoMatch", "NBest": []})
        self.assertEqual(ctx.exception.vendor, "azure")

    def test_absent_subscores_are_omitted(self):
        body = {"NBest": [{"PronunciationAssessment": {"PronScore": 70}}]}
        result = azure.normalize_response(body)
        self.assertEqual(result.details, {"pronunciation": 70})

    def test_language_fallback(self):
        adapter = AzureAdapter("key")
        self.assertEqual(adapter.map_language("zh-TW"), "zh-TW")
        self.assertEqual(adapter.map_language("sw-KE"), "en-US")
        self.assertEqual(adapter.map_language(""), "en-US")

    def test_assessment_header_is_base64_json(self):
        config = json.loads(base64.b64decode(azure.assessment_header("你好嗎")))
        self.assertEqual(config["referenceText"], "你好嗎")
        self.assertEqual(config["gradingSystem"], "HundredMark")
        self.assertEqual(config["granularity"], "Phoneme")
        self.assertTrue(config["enableMiscue"])


class TestAzureRequests(unittest.TestCase):

    @patch("pronlab.adapters.base.requests.request")
    def test_posts_16k_wav_with_assessment_header(self, mock_request):
        mock_request.return_value = _response(200, AZURE_BODY)
        adapter = AzureAdapter("secret", region="westeurope")

        result = adapter.test(_wav_sample(rate=44100), "hello world", "fr-FR")

        method, url = mock_request.call_args.args
        kwargs = mock_request.call_args.kwargs
        self.assertEqual(method, "POST")
        self.assertTrue(url.startswith("https://westeurope.stt.speech.microsoft.com/"))
        self.assertEqual(kwargs["params"], {"language": "fr-FR"})
        self.assertEqual(kwargs["headers"]["Ocp-Apim-Subscription-Key"], "secret")
        self.assertEqual(kwargs["headers"]["Content-Type"], "audio/wav")
        self.assertEqual(decode(kwargs["data"], "wav").sample_rate, 16000)
        self.assertEqual(result.score, 90.4)

    @patch("pronlab.adapters.base.requests.request")
    def test_stereo_upload_sent_as_mono(self, mock_request):
        mock_request.return_value = _response(200, AZURE_BODY)
        stereo = make_buffer(np.full((2, 4410), 0.2), 44100)
        audio = AudioSample(data=encode_wav(stereo), container="wav", filename="stereo.wav")

        AzureAdapter("secret").test(audio, "hello", "en-US")

        sent = decode(mock_request.call_args.kwargs["data"], "wav")
        self.assertEqual(sent.channel_count, 1)
        self.assertEqual(sent.sample_rate, 16000)

    @patch("pronlab.adapters.base.requests.request")
    def test_non_2xx_raises_with_status(self, mock_request):
        mock_request.return_value = _response(401, text="Access denied")
        with self.assertRaises(AdapterError) as ctx:
            AzureAdapter("bad").test(_wav_sample(), "hello", "en-US")
        self.assertEqual(ctx.exception.http_status, 401)
        self.assertIn("Access denied", str(ctx.exception))

    @patch("pronlab.adapters.base.requests.request")
    def test_transport_failure_raises(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("dns failure")
        with self.assertRaises(AdapterError) as ctx:
            AzureAdapter("key").test(_wav_sample(), "hello", "en-US")
        self.assertIsNone(ctx.exception.http_status)

    @patch("pronlab.adapters.base.requests.request")
    def test_undecodable_audio_raises_before_request(self, mock_request):
        with self.assertRaises(AdapterError):
            AzureAdapter("key").test(AudioSample(b"junk", "wav"), "hello", "en-US")
        mock_request.assert_not_called()

    def test_missing_key_raises(self):
        with self.assertRaises(AdapterError):
            AzureAdapter("").test(_wav_sample(), "hello", "en-US")

    @patch("pronlab.adapters.azure.requests.get")
    def test_connection_405_means_ok(self, mock_get):
        mock_get.return_value = _response(405)
        self.assertTrue(AzureAdapter("key").test_connection())

    @patch("pronlab.adapters.azure.requests.get")
    def test_connection_401_is_negative(self, mock_get):
        mock_get.return_value = _response(401)
        self.assertFalse(AzureAdapter("key").test_connection())

    @patch("pronlab.adapters.azure.requests.get")
    def test_connection_transport_failure_raises(self, mock_get):
        mock_get.side_effect = requests.Timeout("slow")
        with self.assertRaises(AdapterError):
            AzureAdapter("key").test_connection()

    def test_connection_without_key_is_negative(self):
        self.assertFalse(AzureAdapter("").test_connection())

    def test_capabilities_are_static(self):
        caps = AzureAdapter("key").get_capabilities()
        self.assertIn("zh-TW", caps.languages)
        self.assertIn("phoneme-level", caps.features)
        self.assertEqual(caps.max_duration_seconds, 60)


# ===================================================================
# 3. SpeechSuper
# ===================================================================


class TestSpeechSuper(unittest.TestCase):

    def test_language_mapping_and_fallback(self):
        adapter = SpeechSuperAdapter("key")
        self.assertEqual(adapter.map_language("zh-TW"), "zh-cmn")
        self.assertEqual(adapter.map_language("zh-CN"), "zh-cmn")
        self.assertEqual(adapter.map_language("ja-JP"), "jp")
        self.assertEqual(adapter.map_language("fr-FR"), "en")

    def test_core_type(self):
        self.assertEqual(speechsuper.core_type_for("zh-cmn"), "word.eval.cn")
        self.assertEqual(speechsuper.core_type_for("en"), "word.eval")

    def test_maps_words_phonemes_and_tones(self):
        result = speechsuper.normalize_response(SPEECHSUPER_BODY)
        self.assertEqual(result.score, 78)
        self.assertNotIn("rhythm", result.details)
        self.assertEqual(result.details["integrity"], 100)
        word = result.details["words"][0]
        self.assertEqual(word["word"], "你好")
        self.assertEqual(word["phonemes"][0], {"phone": "n", "score": 90, "sound_like": "n"})
        self.assertEqual(result.details["tones"], {"tone_score": 70, "tones": [3, 3]})

    def test_vendor_error_raises(self):
        with self.assertRaises(AdapterError) as ctx:
            speechsuper.normalize_response({"error": "invalid appKey"})
        self.assertIn("invalid appKey", str(ctx.exception))

    def test_missing_result_raises(self):
        with self.assertRaises(AdapterError):
            speechsuper.normalize_response({"tokenId": "abc"})

    def test_missing_overall_score_is_absent(self):
        result = speechsuper.normalize_response({"result": {"fluency": 80}})
        self.assertIsNone(result.score)
        self.assertEqual(result.details["fluency"], 80)

    @patch("pronlab.adapters.base.requests.request")
    def test_multipart_request(self, mock_request):
        mock_request.return_value = _response(200, SPEECHSUPER_BODY)
        sample = _wav_sample()

        SpeechSuperAdapter("key", app_id="app-1").test(sample, "你好", "zh-TW")

        kwargs = mock_request.call_args.kwargs
        self.assertEqual(kwargs["headers"], {"X-API-Key": "key", "X-App-Id": "app-1"})
        self.assertEqual(
            kwargs["data"], {"text": "你好", "coreType": "word.eval.cn", "language": "zh-cmn"},
        )
        filename, fileobj, mime = kwargs["files"]["audio"]
        self.assertEqual(filename, "take1.wav")
        self.assertEqual(fileobj.read(), sample.data)
        self.assertEqual(mime, "audio/wav")

    def test_connection_reflects_key(self):
        self.assertTrue(SpeechSuperAdapter("key").test_connection())
        self.assertFalse(SpeechSuperAdapter("").test_connection())


# ===================================================================
# 4. Generic JSON adapter
# ===================================================================


class TestGenericAdapter(unittest.TestCase):

    @patch("pronlab.adapters.base.requests.request")
    def test_json_payload_and_mapping(self, mock_request):
        mock_request.return_value = _response(200, {"overall_score": 64, "fluency": 70})
        adapter = GenericJSONAdapter("speechace", "tok", "https://api.example.com/v1/assess/")

        result = adapter.test(AudioSample(b"RIFFdata", "wav"), "hello", "de-DE")

        kwargs = mock_request.call_args.kwargs
        self.assertEqual(mock_request.call_args.args[1], "https://api.example.com/v1/assess")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["json"]["audio"], base64.b64encode(b"RIFFdata").decode())
        self.assertEqual(kwargs["json"]["language"], "en-US")
        self.assertEqual(result.score, 64)
        self.assertEqual(result.details, {"fluency": 70})

    def test_missing_overall_score_is_absent(self):
        adapter = GenericJSONAdapter("speechace", "tok", "https://api.example.com")
        result = adapter.normalize_response({"accuracy": 90})
        self.assertIsNone(result.score)
        self.assertEqual(result.details, {"accuracy": 90})

    @patch("pronlab.adapters.generic.requests.get")
    def test_status_endpoint(self, mock_get):
        mock_get.return_value = _response(200)
        adapter = GenericJSONAdapter("x", "tok", "https://api.example.com")
        self.assertTrue(adapter.test_connection())
        self.assertEqual(mock_get.call_args.args[0], "https://api.example.com/status")


# ===================================================================
# 5. Registry
# ===================================================================


class TestRegistry(unittest.TestCase):

    def test_duplicate_name_rejected(self):
        registry = AdapterRegistry([AzureAdapter("a")])
        with self.assertRaises(ValueError):
            registry.register(AzureAdapter("b"))

    def test_subset_keeps_requested_order(self):
        registry = AdapterRegistry([AzureAdapter("a"), SpeechSuperAdapter("b")])
        self.assertEqual(registry.subset(["speechsuper", "azure"]).names(), ["speechsuper", "azure"])
        with self.assertRaises(KeyError):
            registry.subset(["elsa"])

    def test_build_registry_only_configured_vendors(self):
        registry = build_registry(Settings(speechsuper_key="k"))
        self.assertEqual(registry.names(), ["speechsuper"])

        registry = build_registry(Settings(
            azure_key="a", speechsuper_key="s",
            generic_name="elsa", generic_endpoint="https://elsa.example.com",
        ))
        self.assertEqual(registry.names(), ["azure", "speechsuper", "elsa"])
        self.assertEqual(registry.get("azure").region, "eastus")

    def test_empty_settings_give_empty_registry(self):
        self.assertEqual(len(build_registry(Settings())), 0)


if __name__ == "__main__":
    unittest.main()
