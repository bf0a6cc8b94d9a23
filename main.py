from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# `uvicorn main:app` serves the HTTP API; `python main.py` runs the CLI.
from interface.api import app  # noqa: E402,F401
from interface.cli import main as run_cli  # noqa: E402

if __name__ == "__main__":
    run_cli(sys.argv[1:])
