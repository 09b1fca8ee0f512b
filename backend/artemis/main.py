"""
Artemis API
===========
FastAPI application entry point for the wearable sync layer. Mount routers here.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from artemis.config import get_settings
from artemis.routers import integrations, trainers, wearables, webhooks

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Artemis API",
    description="Unified wearable data sync: Whoop, Oura, Fitbit, Garmin",
    version="0.1.0",
    docs_url="/api/docs" if settings.environment != "production" else None,
    redoc_url="/api/redoc" if settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(integrations.router)
app.include_router(wearables.router)
app.include_router(trainers.router)
app.include_router(webhooks.router)


@app.get("/api/v1/health")
async def health_check() -> dict:
    return {"status": "ok", "service": "artemis-api"}
