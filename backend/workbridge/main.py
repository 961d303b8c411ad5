from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workbridge.config import settings
from workbridge.middleware.exceptions import register_exception_handlers
from workbridge.middleware.security import SecurityHeadersMiddleware
from workbridge.routers import files, health, onboarding
from workbridge.services.lifecycle import lifespan

app = FastAPI(
    title="WorkBridge",
    description="Worker onboarding for overseas job placement",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(files.router)
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
