"""Run the Basejump webhook service: ``python -m basejump``."""
from __future__ import annotations

import uvicorn

from basejump.config import settings


def main() -> None:
    uvicorn.run("basejump.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
