"""
EZApply Account Lifecycle - FastAPI Application

Main entry point for the account lifecycle and credit backend.

Architecture:
- Credit Ledger: append-only transactions → derived balance
- Field Disclosure Gate: charge-once grants over applicant fields
- Account State Machine: request → grace period → deactivated → restored
- Archival Engine: snapshot before deactivation, restore on approval
- Deactivation Scheduler: daily batch with per-account isolation
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import (
    auth_router, account_router, reactivation_router,
    admin_router, credits_router, scheduler_router,
)
from .database import init_db
from .logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize database on startup."""
    configure_logging()
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="EZApply Account Lifecycle",
    description="""
    EZApply - Account Lifecycle and Monetized Disclosure

    ## Accounts
    - Users request deactivation; a grace period follows, then the daily
      scheduler archives and deactivates the account
    - Deactivated users may only file a reactivation request, reviewed by an admin

    ## Credits
    - Company accounts hold a prepaid credit balance (sum of ledger entries)
    - Each applicant field is paid for once per company, then stays visible
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(account_router)
app.include_router(reactivation_router)
app.include_router(credits_router)
app.include_router(admin_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "EZApply Account Lifecycle",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m ezapply.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
