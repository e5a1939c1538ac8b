"""
FastAPI app for the control API.
"""
from fastapi import FastAPI

from .routes import router as control_router

app = FastAPI(title="Voice Editor Control API")
app.include_router(control_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "component": "control_api"}
