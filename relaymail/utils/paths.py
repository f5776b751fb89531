"""Centralized path definitions for relaymail.

All paths hang off a single base directory which defaults to
``~/.relaymail`` and can be moved with the ``RELAYMAIL_HOME`` environment
variable.
"""

import os
from pathlib import Path

# Base application directory
RELAYMAIL_DIR = Path(os.environ.get("RELAYMAIL_HOME", Path.home() / ".relaymail"))

# Subdirectories
LOGS_DIR = RELAYMAIL_DIR / "logs"

# Specific files
CONFIG_PATH = RELAYMAIL_DIR / "config.json"
