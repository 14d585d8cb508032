"""Entrypoint: python -m chat_sync (runs the private relay)"""
from __future__ import annotations

from chat_sync.workers.private_relay import main

if __name__ == "__main__":
    main()
