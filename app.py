"""Pagewise reading analytics server. Start with: python app.py"""

import logging

import uvicorn
from fastapi import FastAPI

from pagewise.api.routes import router, load_config, init_store, shutdown

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("pagewise")

# ── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(title="Pagewise", version="0.1.0")

# API routes
app.include_router(router)


# ── Startup / shutdown ───────────────────────────────────────────────────────

@app.on_event("startup")
async def startup():
    config = load_config()
    init_store(config)
    logger.info("Pagewise is ready")


@app.on_event("shutdown")
async def on_shutdown():
    await shutdown()
    logger.info("Pagewise stopped")


# ── Run ──────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
