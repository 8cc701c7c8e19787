"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from rest_api.core.cors import configure_cors
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.accounting import router as accounting_router
from rest_api.routers.floor import router as floor_router
from rest_api.routers.orders import router as orders_router
from rest_api.routers.public import health_router
from rest_api.routers.riders import router as riders_router
from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.exceptions import CATEGORY_STATUS_CODES, DomainError


app = FastAPI(
    title="Fireflow POS API",
    description="Order lifecycle and floor/ledger synchronization for restaurant terminals",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """A DomainError that escaped a service result still maps to its category."""
    return JSONResponse(
        status_code=CATEGORY_STATUS_CODES[exc.category],
        content={"detail": exc.to_dict()},
    )


register_middlewares(app)
configure_cors(app)
# Outermost, so every log line of the request carries the id
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(orders_router)
app.include_router(floor_router)
app.include_router(riders_router)
app.include_router(accounting_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=True,
    )
