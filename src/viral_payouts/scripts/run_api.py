"""Helper to run the FastAPI server."""

from __future__ import annotations

import logging

import uvicorn


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("viral_payouts.api.server:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
