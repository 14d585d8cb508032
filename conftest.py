"""Root conftest: exports .env.test so Settings() picks it up at import time."""
from __future__ import annotations

import os
from pathlib import Path

_ENV_FILE = Path(__file__).resolve().parent / ".env.test"

for raw in _ENV_FILE.read_text().splitlines() if _ENV_FILE.exists() else ():
    entry = raw.strip()
    if entry and not entry.startswith("#") and "=" in entry:
        name, _, value = entry.partition("=")
        os.environ.setdefault(name.strip(), value.strip())
