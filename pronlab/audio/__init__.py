# pronlab/audio/__init__.py
# ==========================
# Audio Processing Layer - PronLab
#
#   - Decode uploads (wav natively, other containers via pydub)
#   - Encode canonical 16-bit PCM WAV for vendor uploads
#   - Downmix / resample / trim silence / normalize volume

from pronlab.audio.codec import (  # noqa: F401
    AudioError,
    AudioSample,
    DecodeError,
    PcmBuffer,
    SilentAudioError,
    decode,
    downmix,
    encode_wav,
    normalize_volume,
    resample,
    trim_silence,
)
