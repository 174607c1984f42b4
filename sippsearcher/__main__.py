"""
Run the API with uvicorn: ``python -m sippsearcher``.
"""

from __future__ import annotations

import logging

import uvicorn

from sippsearcher.app import create_app
from sippsearcher.config import get_settings


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
