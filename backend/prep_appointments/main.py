import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prep_appointments.database import init_db
from prep_appointments.routes import forms, schedule, stats, submissions

APP_NAME = "Prep Appointments API"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(forms.router, prefix="/api", tags=["forms"])
app.include_router(submissions.router, prefix="/api", tags=["submissions"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])
app.include_router(stats.router, prefix="/api", tags=["stats"])


@app.on_event("startup")
def on_startup():
    init_db()
    route_count = sum(1 for r in app.routes if getattr(r, "path", None))
    logger.info("STARTUP: %s ready, %d routes registered", APP_NAME, route_count)


@app.get("/api/health")
def health_check():
    """Liveness check"""
    return {"app_name": APP_NAME, "status": "healthy"}
