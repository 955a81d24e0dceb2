import logging

from fastapi import FastAPI

from backend.routers import fleet, reconcile

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="fleetctl Backend API",
    version="1.0.0",
    description="Reconciles the local-storage diskmaker fleet on demand",
)


@app.get("/", tags=["Status"])
def root():
    """Simple health endpoint."""
    return {"status": "fleetctl Backend Running"}


# Attach routers under /api/*
app.include_router(reconcile.router, prefix="/api")
app.include_router(fleet.router, prefix="/api")
