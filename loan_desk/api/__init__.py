"""
Loan Desk API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .customers import router as customers_router
from .loans import router as loans_router
from .reports import router as reports_router
from ..errors import (
    AlreadyPaid, CustomerHasLoans, ImmutableAfterDisbursal, InstallmentNotFound,
    InvalidParameters, InvalidTransition, KYCImmutable, LoanDeskError, NotFound,
    PermissionDenied
)
from ..logging_config import get_logger, log_action


logger = get_logger("loan_desk.api")

# First match wins
ERROR_STATUS = (
    (NotFound, 404),
    (InstallmentNotFound, 404),
    (PermissionDenied, 403),
    (InvalidParameters, 422),
    (InvalidTransition, 409),
    (AlreadyPaid, 409),
    (ImmutableAfterDisbursal, 409),
    (CustomerHasLoans, 409),
    (KYCImmutable, 409),
)


def status_for(error: LoanDeskError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Desk API",
        description="Loan origination, disbursal and EMI collection",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LoanDeskError)
    async def loan_desk_error_handler(request: Request, exc: LoanDeskError):
        status_code = status_for(exc)
        log_action(
            logger, "warning", str(exc),
            user_id=request.headers.get("x-user-id"),
            role=request.headers.get("x-role"),
            action=f"{request.method} {request.url.path}",
            extra={"error": type(exc).__name__, "status_code": status_code}
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__}
        )

    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(reports_router, tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_desk_api",
            "version": "1.0.0"
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Loan Desk API",
            "version": "1.0.0",
            "description": "Loan origination, disbursal and EMI collection",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "customers": "/customers",
                "loans": "/loans",
                "reports": "/reports",
                "audit": "/audit/verify"
            }
        }

    return app
