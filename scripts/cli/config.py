"""CLI configuration: project root and output defaults."""

import os
from pathlib import Path

# Project root (parent of scripts/)
ROOT = Path(__file__).resolve().parent.parent.parent

# Structured JSON log file; console output stays human-readable
LOG_PATH = Path(os.environ.get("DUES_CLI_LOG", ROOT / "logs" / "dues_cli.log"))

CURRENCY = "GH₵"
