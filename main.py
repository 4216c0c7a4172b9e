"""
main.py
========
Central entry point for the PronLab service.

Run with:
    uvicorn main:app --reload
"""

import logging

from dotenv import load_dotenv

load_dotenv()  # Load .env before any module reads env vars

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Keep HTTP client and form-parser internals out of the lab log
for _noisy_logger_name in (
    "urllib3",
    "urllib3.connectionpool",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy_logger_name).setLevel(logging.WARNING)

from pronlab.api.server import app  # noqa: F401, E402

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
