"""DocKit Settlements - Main Application."""

import logging.config

from fastapi import FastAPI

from app.api.routes import settlements, stations
from app.core.config import settings
from app.core.database import Base, engine
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from app.core.logging_config import LOGGING_CONFIG

from app import models  # noqa: F401  (register tables on Base.metadata)

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Settlements",
        "description": (
            "Aggregate vendor revenue per day, initiate or request payouts, "
            "and mark them completed exactly once."
        ),
    },
    {
        "name": "Stations",
        "description": (
            "Create charging stations and change their image galleries together "
            "with the owning vendor's counters."
        ),
    },
]


app = FastAPI(
    title="DocKit Settlements",
    description=(
        "## Vendor Settlement API\n\n"
        "Pays out EV charging operators for completed charging sessions and "
        "restaurant orders.\n\n"
        "### Settlement lifecycle\n"
        "| Status | Meaning |\n"
        "|--------|---------|\n"
        "| `pending` | Requested by the vendor, awaiting payment |\n"
        "| `processing` | Initiated by an admin, awaiting payment |\n"
        "| `completed` | Paid; items flipped to `settled` |\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Who is owed money today?\n"
        "curl '/api/v1/settlements/vendors?date=2024-01-10'\n\n"
        "# 2. Earmark a vendor's revenue\n"
        'curl -X POST /api/v1/settlements/initiate -H "Content-Type: application/json" '
        '-d \'{"vendor_id":"...","date":"2024-01-10","amount":300}\'\n\n'
        "# 3. Record the bank transfer\n"
        'curl -X POST /api/v1/settlements/complete -H "Content-Type: application/json" '
        '-d \'{"settlement_id":"STL...","payment_reference":"TXN123"}\'\n'
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

register_exception_handlers(app)

app.include_router(settlements.router, prefix="/api/v1/settlements", tags=["Settlements"])
app.include_router(stations.router, prefix="/api/v1/stations", tags=["Stations"])

logger.info("DocKit Settlements API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    """
    return {"status": "healthy", "service": "dockit-settlements"}
