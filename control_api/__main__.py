"""
Entry point for running the control API.

Usage:
    python -m control_api

This starts the FastAPI server on http://0.0.0.0:8000
"""
import os

import uvicorn
from logging_setup import setup_logging

if __name__ == "__main__":
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), use_json=True)

    uvicorn.run(
        "control_api.server:app",
        host="0.0.0.0",
        port=int(os.getenv("CONTROL_API_PORT", "8000")),
        log_level="info",
    )
