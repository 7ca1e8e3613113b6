"""Entry point for running the FastAPI application."""

import logging
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Can be overridden: PORT=9000 python main.py
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "explorer.api.main:app",
        host="127.0.0.1",
        port=port,
        reload=False,
    )
