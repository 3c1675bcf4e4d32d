"""Run the FastAPI app for the coding agent."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from main_config import LOG_LEVEL
from code_agent.api import router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Code Agent", version="0.1.0")
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
