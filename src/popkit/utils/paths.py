"""Centralized path definitions for popkit.

Single source of truth for the directories popkit reads and writes.
"""

from pathlib import Path

# Base application directory
POPKIT_DIR = Path.home() / ".popkit"

# Subdirectories
LOGS_DIR = POPKIT_DIR / "logs"

# Specific files
CONFIG_PATH = POPKIT_DIR / "config.json"
