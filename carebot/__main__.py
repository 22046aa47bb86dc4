"""Run the Carebot CLI.

Usage:
    python -m carebot chat
"""

from __future__ import annotations

from carebot.cli import main

if __name__ == "__main__":
    main()
