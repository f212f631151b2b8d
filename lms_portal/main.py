from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from .core.config import settings
from .core.error_handlers import register_exception_handlers
from .core.logging import setup_logging
from .services.lms_client import LMSClient
from .services.session_service import SessionManager

# Import all routers
from .routers import health, auth, modules, attendance, grades, dashboard

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting LMS Portal ({settings.environment}) against {settings.lms_api_url}")

    # A client installed beforehand (tests) is kept
    if getattr(app.state, "lms_client", None) is None:
        app.state.lms_client = LMSClient()
    app.state.session_manager = SessionManager(app.state.lms_client)
    logger.info("LMS backend client initialized")

    yield

    logger.info("Shutting down LMS Portal")
    app.state.session_manager.close()
    await app.state.lms_client.aclose()
    app.state.lms_client = None
    logger.info("Shutdown complete")

app = FastAPI(
    title="LMS Portal - Attendance & Grade Aggregation",
    description="Lecturer and student portal over the LMS backend: attendance sessions, QR marking, grades and CGPA",
    version=settings.app_version,
    lifespan=lifespan
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

register_exception_handlers(app)

# Include all routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(modules.router)
app.include_router(attendance.router)
app.include_router(grades.router)
app.include_router(dashboard.router)

@app.get("/")
async def root():
    return {
        "message": "LMS Portal API",
        "version": settings.app_version,
        "features": ["Attendance sessions", "QR attendance", "Grade aggregation", "CGPA"],
        "status": "active"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
