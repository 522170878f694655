"""
Entry point: opens a page, encodes its accessibility tree and asks the
configured model which elements match an instruction.

Usage: python run_observer.py <url> [instruction]
"""

import asyncio
import os
import sys

from web_observer.core.runner import print_summary, run

DEFAULT_URL = "https://example.com"


def main():
    url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL
    instruction = sys.argv[2] if len(sys.argv) > 2 else None
    model_name = os.getenv("WEB_OBSERVER_MODEL", "gpt-4o")
    results = asyncio.run(run(url, instruction, model_name, iframes=True))
    print_summary(url, results)


if __name__ == "__main__":
    main()
