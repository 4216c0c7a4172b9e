"""
pronlab/audio/codec.py
=======================
Audio Codec - PronLab

Responsibility:
    - Decode uploaded audio (WAV natively, anything else via pydub/ffmpeg)
      into a float PCM buffer
    - Encode PCM into the canonical 16-bit linear WAV container that the
      vendor adapters send upstream
    - Resample, trim leading/trailing silence, and peak-normalize buffers

Every transform returns a NEW PcmBuffer. Input buffers are never mutated,
so one decoded buffer can be shared by adapters running in parallel.

This module does NOT:
    - Call any vendor API
    - Persist audio anywhere
"""

import base64
import io
import logging
import struct
import wave
from dataclasses import dataclass

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

logger = logging.getLogger("pronlab.audio.codec")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WAV_HEADER_SIZE = 44
PCM_FORMAT_CODE = 1
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8

DEFAULT_SILENCE_THRESHOLD = 0.01
NORMALIZE_TARGET_PEAK = 0.95

# Container hints that are parsed without ffmpeg
_WAV_HINTS = {"wav", "wave", "x-wav", "vnd.wave"}

# Integer PCM widths supported by the native WAV reader
_DTYPE_MAP = {1: np.uint8, 2: np.int16, 4: np.int32}
_NORM_MAP = {1: 128.0, 2: 32768.0, 4: 2147483648.0}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AudioError(Exception):
    """Base class for codec failures."""
    pass


class DecodeError(AudioError):
    """Raised when audio is empty, corrupt, or in an unrecognized container."""
    pass


class SilentAudioError(AudioError):
    """Raised by strict volume normalization when the input peak is zero."""
    pass


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AudioSample:
    """Raw audio as captured or uploaded, before any decoding."""

    data: bytes
    container: str = "wav"    # "wav", "webm", "mp3", or a MIME type
    filename: str = "audio.wav"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def format(self) -> str:
        return container_format(self.container)


@dataclass(frozen=True, eq=False)
class PcmBuffer:
    """
    Decoded audio: one float32 row per channel, samples in [-1.0, 1.0].

    ``channels`` has shape (n_channels, frame_count).
    """

    channels: np.ndarray
    sample_rate: int

    @property
    def channel_count(self) -> int:
        return int(self.channels.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.channels.shape[1])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate


def make_buffer(channels, sample_rate: int) -> PcmBuffer:
    """
    Build a PcmBuffer from a 1-D (mono) or 2-D (channels x frames) sequence.

    Raises:
        ValueError: On a non-positive sample rate or a shape other than 1-D/2-D.
    """
    if sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {sample_rate}.")

    arr = np.array(channels, dtype=np.float32)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[0] == 0:
        raise ValueError("PCM data must be 1-D (mono) or 2-D (channels x frames).")

    arr.setflags(write=False)
    return PcmBuffer(channels=arr, sample_rate=int(sample_rate))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def container_format(hint: str) -> str:
    """
    Reduce a container hint to a bare format name.

    Accepts ``"wav"``, ``".mp3"``, ``"audio/webm;codecs=opus"`` or a filename.
    """
    if not hint:
        return ""
    fmt = hint.strip().lower()
    fmt = fmt.split(";", 1)[0]
    if "/" in fmt:
        fmt = fmt.rsplit("/", 1)[1]
    if "." in fmt:
        fmt = fmt.rsplit(".", 1)[1]
    if fmt in _WAV_HINTS:
        return "wav"
    if fmt == "mpeg":
        return "mp3"
    return fmt


def decode(raw: bytes, container_hint: str = "wav") -> PcmBuffer:
    """
    Decode raw audio bytes into a PcmBuffer.

    WAV data is read with the ``wave`` module. Other containers (webm, ogg,
    mp3, m4a ...) go through pydub, which needs ffmpeg on the PATH.

    Args:
        raw:            Audio file bytes.
        container_hint: Format name, extension, MIME type, or filename.

    Returns:
        PcmBuffer with float32 samples in [-1.0, 1.0].

    Raises:
        DecodeError: If the bytes are empty, corrupt, or undecodable.
    """
    if not raw:
        raise DecodeError("Audio payload is empty.")

    fmt = container_format(container_hint)
    if fmt == "wav" or (not fmt and raw[:4] == b"RIFF"):
        return _decode_wav(raw)
    return _decode_with_pydub(raw, fmt)


def _decode_wav(raw: bytes) -> PcmBuffer:
    try:
        with wave.open(io.BytesIO(raw), "rb") as wf:
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            sample_rate = wf.getframerate()
            raw_pcm = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError, struct.error) as exc:
        raise DecodeError(f"Audio file is corrupt or not a PCM WAV: {exc}") from exc

    if sampwidth not in _DTYPE_MAP:
        raise DecodeError(f"Unsupported WAV sample width: {sampwidth * 8} bits.")

    return _pcm_bytes_to_buffer(raw_pcm, sampwidth, n_channels, sample_rate)


def _decode_with_pydub(raw: bytes, fmt: str) -> PcmBuffer:
    try:
        segment = AudioSegment.from_file(io.BytesIO(raw), format=fmt or None)
    except CouldntDecodeError as exc:
        raise DecodeError(f"Audio could not be decoded as '{fmt or 'unknown'}'.") from exc
    except Exception as exc:
        raise DecodeError(f"Unexpected error decoding '{fmt or 'unknown'}' audio: {exc}") from exc

    if segment.sample_width not in _DTYPE_MAP:
        segment = segment.set_sample_width(BYTES_PER_SAMPLE)

    return _pcm_bytes_to_buffer(
        segment.raw_data, segment.sample_width, segment.channels, segment.frame_rate,
    )


def _pcm_bytes_to_buffer(
    raw_pcm: bytes, sampwidth: int, n_channels: int, sample_rate: int,
) -> PcmBuffer:
    """Convert interleaved little-endian integer PCM to a float PcmBuffer."""
    frame_bytes = sampwidth * n_channels
    usable = len(raw_pcm) - (len(raw_pcm) % frame_bytes)

    pcm = np.frombuffer(raw_pcm[:usable], dtype=np.dtype(_DTYPE_MAP[sampwidth]).newbyteorder("<"))
    if sampwidth == 2:
        pcm = int16_to_float(pcm)
    else:
        pcm = pcm.astype(np.float64)
        if sampwidth == 1:
            # 8-bit WAV is unsigned
            pcm = pcm - 128.0
        pcm = pcm / _NORM_MAP[sampwidth]

    interleaved = pcm.reshape(-1, n_channels)
    return make_buffer(interleaved.T, sample_rate)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def wav_header(channel_count: int, sample_rate: int, frame_count: int) -> bytes:
    """Build the 44-byte canonical PCM WAV header."""
    data_size = frame_count * channel_count * BYTES_PER_SAMPLE
    block_align = channel_count * BYTES_PER_SAMPLE
    byte_rate = sample_rate * block_align

    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        data_size + WAV_HEADER_SIZE - 8,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_CODE,
        channel_count,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    """
    Quantize float samples to int16.

    Samples are clamped to [-1, 1]; negatives are scaled by 32768 and
    non-negatives by 32767, then truncated toward zero.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 32768.0, clamped * 32767.0)
    return np.trunc(scaled).astype(np.int16)


def int16_to_float(samples: np.ndarray) -> np.ndarray:
    """Inverse of float_to_int16: negatives / 32768, non-negatives / 32767."""
    ints = np.asarray(samples, dtype=np.float64)
    return np.where(ints < 0, ints / 32768.0, ints / 32767.0)


def encode_wav(pcm: PcmBuffer) -> bytes:
    """
    Encode a PcmBuffer as a 16-bit little-endian PCM WAV file.

    Output is deterministic: the same buffer always yields the same bytes.
    """
    header = wav_header(pcm.channel_count, pcm.sample_rate, pcm.frame_count)
    # (channels, frames) -> frames-major interleaving
    interleaved = float_to_int16(pcm.channels).T.reshape(-1)
    return header + interleaved.astype("<i2").tobytes()


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


def resample(pcm: PcmBuffer, target_rate: int) -> PcmBuffer:
    """
    Resample to ``target_rate`` by linear interpolation.

    The output holds ``floor(frame_count * target_rate / sample_rate)``
    frames (duration x target rate, computed in integers) and keeps the
    input's channel count.
    """
    if target_rate <= 0:
        raise ValueError(f"Target sample rate must be positive, got {target_rate}.")
    if target_rate == pcm.sample_rate:
        return pcm

    out_frames = pcm.frame_count * target_rate // pcm.sample_rate
    if pcm.frame_count == 0 or out_frames == 0:
        return make_buffer(np.zeros((pcm.channel_count, out_frames)), target_rate)

    src_times = np.arange(pcm.frame_count) / pcm.sample_rate
    dst_times = np.arange(out_frames) / target_rate
    rows = [np.interp(dst_times, src_times, channel) for channel in pcm.channels]

    logger.debug(
        "Resampled %d frames @ %d Hz -> %d frames @ %d Hz.",
        pcm.frame_count, pcm.sample_rate, out_frames, target_rate,
    )
    return make_buffer(np.vstack(rows), target_rate)


def trim_silence(pcm: PcmBuffer, threshold: float = DEFAULT_SILENCE_THRESHOLD) -> PcmBuffer:
    """
    Cut leading and trailing silence.

    Channel 0 decides the boundaries: the first and last samples whose
    absolute value exceeds ``threshold`` are kept, inclusive, on every
    channel. If no sample exceeds the threshold the result is an empty
    (0-frame) buffer.
    """
    loud = np.flatnonzero(np.abs(pcm.channels[0]) > threshold)
    if loud.size == 0:
        logger.info("No sample above %.4f - audio trimmed to empty buffer.", threshold)
        return make_buffer(np.zeros((pcm.channel_count, 0)), pcm.sample_rate)

    start, end = int(loud[0]), int(loud[-1])
    return make_buffer(pcm.channels[:, start:end + 1], pcm.sample_rate)


def normalize_volume(pcm: PcmBuffer, strict: bool = False) -> PcmBuffer:
    """
    Scale all channels so the peak absolute amplitude becomes 0.95.

    Args:
        pcm:    Buffer to normalize.
        strict: Raise instead of passing a silent buffer through.

    Raises:
        SilentAudioError: If ``strict`` and the peak amplitude is zero.
    """
    peak = float(np.max(np.abs(pcm.channels))) if pcm.frame_count else 0.0
    if peak == 0.0:
        if strict:
            raise SilentAudioError("Cannot normalize silent audio (peak amplitude is 0).")
        logger.warning("Peak amplitude is 0 - volume normalization skipped.")
        return pcm

    factor = NORMALIZE_TARGET_PEAK / peak
    return make_buffer(pcm.channels.astype(np.float64) * factor, pcm.sample_rate)


def downmix(pcm: PcmBuffer) -> PcmBuffer:
    """Average all channels into one. Mono input is returned unchanged."""
    if pcm.channel_count == 1:
        return pcm
    return make_buffer(pcm.channels.astype(np.float64).mean(axis=0), pcm.sample_rate)


# ---------------------------------------------------------------------------
# Convenience helpers used by adapters
# ---------------------------------------------------------------------------


def is_canonical_wav(raw: bytes) -> bool:
    """True if ``raw`` starts with a 16-bit PCM RIFF/WAVE header."""
    if len(raw) < WAV_HEADER_SIZE or raw[:4] != b"RIFF" or raw[8:12] != b"WAVE":
        return False
    audio_format, _, _, _, _, bits = struct.unpack("<HHIIHH", raw[20:36])
    return raw[12:16] == b"fmt " and audio_format == PCM_FORMAT_CODE and bits == BITS_PER_SAMPLE


def convert_to_wav(sample: AudioSample) -> bytes:
    """Return the sample as 16-bit PCM WAV, re-encoding only when needed."""
    if sample.format == "wav" and is_canonical_wav(sample.data):
        return sample.data
    return encode_wav(decode(sample.data, sample.container))


def prepare_wav(
    sample: AudioSample,
    sample_rate: int | None = None,
    trim: bool = False,
    normalize: bool = False,
    silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
    mono: bool = False,
) -> bytes:
    """
    Decode, optionally downmix / resample / trim / normalize, and encode as WAV.

    Transforms run in the order downmix → resample → trim → normalize.
    """
    pcm = decode(sample.data, sample.container)
    if mono:
        pcm = downmix(pcm)
    if sample_rate is not None:
        pcm = resample(pcm, sample_rate)
    if trim:
        pcm = trim_silence(pcm, silence_threshold)
    if normalize:
        pcm = normalize_volume(pcm)
    return encode_wav(pcm)


def get_duration(sample: AudioSample) -> float:
    """Duration of the sample in seconds (decodes the audio)."""
    return decode(sample.data, sample.container).duration


def to_base64(data: bytes) -> str:
    """Base64-encode audio bytes for JSON payloads."""
    return base64.b64encode(data).decode("ascii")
