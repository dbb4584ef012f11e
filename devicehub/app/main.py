"""
DeviceHub Backend - FastAPI Application

Entry point for the REST API server.
"""

import os
import logging
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from devicehub.app.database import init_db
from devicehub.app.api import devices, sensor_data

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8080").split(",")
    if origin.strip()
]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)-8s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    await init_db()
    yield


app = FastAPI(
    title="DeviceHub API",
    description="ESP32 device registry and provisioning backend",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Sensor data first: /devices/sensor-data must win over /devices/{id}
app.include_router(sensor_data.router, prefix="/api")
app.include_router(devices.router, prefix="/api")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/health")
def api_health():
    """Health check under the API prefix, with the server time."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
