"""
eml-to-text-bot
FastAPI application that replies to shared .eml/.msg files in Slack with
their text.
"""

import logging

from fastapi import FastAPI

from emlbot.config import get_settings
from emlbot.routers import diagnostics, slack

# Configure logging to output to console
logging.basicConfig(
    level=logging.DEBUG if get_settings().verbose_logging else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="eml-to-text-bot",
    description="Converts mail files shared in Slack to text and replies in thread",
    version="0.1.0",
)

# Include routers
app.include_router(slack.router, prefix="/slack", tags=["slack"])
app.include_router(diagnostics.router, tags=["diagnostics"])


@app.get("/")
async def root():
    return {"message": "eml-to-text-bot", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
