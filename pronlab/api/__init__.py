# pronlab/api/__init__.py
# ========================
# HTTP API Layer - PronLab
#
# Exposes the lab over FastAPI for whatever display layer sits in front.
