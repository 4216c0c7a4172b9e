# pronlab/__init__.py
# ====================
# PronLab - pronunciation-assessment API comparison harness
#
# Layers:
#   pronlab.audio     decode / encode WAV / resample / trim / normalize
#   pronlab.adapters  one adapter per vendor + explicit registry
#   pronlab.lab       parallel fan-out, statistics, outliers, cost
#   pronlab.sessions  append-only session history
#   pronlab.api       FastAPI endpoints

__version__ = "1.0.0"
