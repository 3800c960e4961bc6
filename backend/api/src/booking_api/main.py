"""FastAPI application for the booking engine REST API.

Provides endpoints for:
- Availability, checkout and booking lookup
- Stripe webhooks
- Refunds and staff confirmation
- Admin jobs (reservation reaper, payment reconciliation)
"""

import os
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from booking_api.exceptions import register_exception_handlers
from booking_api.middleware.correlation import CorrelationIdMiddleware
from booking_api.models.common import PingResponse
from booking_api.routes.admin import router as admin_router
from booking_api.routes.availability import router as availability_router
from booking_api.routes.bookings import router as bookings_router
from booking_api.routes.checkout import router as checkout_router
from booking_api.routes.refunds import router as refunds_router
from booking_api.routes.webhooks import router as webhooks_router
from booking_engine.utils.logging import configure_logging

configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

app = FastAPI(
    title="Booking Engine API",
    description="Booking lifecycle and payment reconciliation",
    version="0.1.0",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get(
        "CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Include routers under /api prefix (CloudFront routes /api/* to API Gateway)
app.include_router(availability_router, prefix="/api")
app.include_router(checkout_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(refunds_router, prefix="/api")
app.include_router(bookings_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/ping", response_model=PingResponse)
async def ping() -> PingResponse:
    return PingResponse(timestamp=datetime.now(UTC).isoformat())


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """Run the API locally with uvicorn."""
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "booking_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["backend/api/src", "backend/engine/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
