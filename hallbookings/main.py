from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from hallbookings import settings
from hallbookings.db import close_db, init_db
from hallbookings.errors import install_error_handlers
from hallbookings.log import configure_logging
from hallbookings.routers import booking, invoice, quotation, resource


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_db()
    logger.info("Service starting ({})", settings.ENVIRONMENT)
    try:
        yield
    finally:
        await close_db()


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Hall Bookings API",
        version="1.0.0",
        description="Bookings, quotations, invoices and payments for hall owners",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("REQUEST: {} {}", request.method, request.url.path)
        response = await call_next(request)
        logger.info("RESPONSE: {} {} {}", response.status_code, request.method, request.url.path)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    app.include_router(booking.router)
    app.include_router(quotation.router)
    app.include_router(invoice.router)
    app.include_router(resource.router)
    app.include_router(resource.pricing_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "OK", "environment": settings.ENVIRONMENT}

    return app


app = create_app()
