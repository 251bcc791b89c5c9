"""Main FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from siteflow import config
from siteflow.database import engine, Base
from siteflow.logging_config import configure_logging
from siteflow.api.routes import router
# Import models to register them with SQLAlchemy Base
from siteflow.models.domain import Site, DailyReport, AttendanceRecord, Document, SiteWorker, Notification
from siteflow.models.audit import AuditLogEntry

configure_logging(config.LOG_LEVEL)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="SiteFlow - Daily Report Workflow",
    description="Approval workflow, optimistic concurrency and audit trail for construction-site daily reports.",
    version="0.1.0"
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["Workflow"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "SiteFlow"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
