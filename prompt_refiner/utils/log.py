from __future__ import annotations

import os
import sys


def log(tag: str, message: str) -> None:
    print(f"[{tag}] {message}", file=sys.stderr)


def debug(tag: str, message: str) -> None:
    if os.getenv("REFINER_DEBUG", "") == "1":
        log(tag, message)
