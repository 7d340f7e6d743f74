import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from thinkdrills.api import auth, health, parent, students, worksheets
from thinkdrills.core.auth_middleware import RouteAuthorizationMiddleware
from thinkdrills.core.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    description="Interest-themed practice worksheets for students, reviewed by parents",
    version="0.1.0",
)

# Page gate: runs before any handler for /student/* and /parent/* paths
app.add_middleware(RouteAuthorizationMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",  # Next.js dev server
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(students.router)
app.include_router(parent.router)
app.include_router(worksheets.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "docs": "/docs",
        "health": "/health",
    }
