"""
Fieldtrack API - Live Field Trail Service

Handles:
- Initial load of field agent location tracks
- Live delta sync from the tracking API
- Trails, heatmap points and distance summaries
- Snap to Road via OSRM
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fieldtrack.config import settings
from fieldtrack.routes import trail_routes
from fieldtrack.session import TrailTrackingSession

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    session = TrailTrackingSession.from_settings(settings)
    app.state.session = session
    try:
        await session.load_initial()
    except Exception as e:
        # Serve whatever arrives through live sync
        logger.error(f"Initial track load failed: {e}")
    if settings.LIVE_SYNC_ENABLED:
        session.start_live()
    try:
        yield
    finally:
        await session.aclose()
        app.state.session = None


app = FastAPI(
    title="Fieldtrack API",
    version="1.0.0",
    description="Field agent location tracking and trail processing service",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(trail_routes.router, prefix="", tags=["Trails"])

@app.get("/")
def root():
    return {
        "service": "fieldtrack-api",
        "version": "1.0.0",
        "description": "Field agent location tracking and trail processing service"
    }

@app.get("/health")
def health():
    return {"status": "healthy", "service": "fieldtrack-api"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
