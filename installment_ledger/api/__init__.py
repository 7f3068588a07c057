"""
Installment Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .borrowers import router as borrowers_router
from .loans import router as loans_router
from .installments import router as installments_router
from .payments import router as payments_router
from .reports import router as reports_router
from ..config import get_config
from ..logging_config import setup_logging
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)

    app = FastAPI(
        title="Installment Ledger API",
        description="Weekly installment loan ledger for microfinance field collection",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(borrowers_router, prefix="/borrowers", tags=["Borrowers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(installments_router, prefix="/installments", tags=["Installments"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "installment_ledger_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Installment Ledger API",
            "version": __version__,
            "currency": config.currency,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "borrowers": "/borrowers",
                "loans": "/loans",
                "installments": "/installments",
                "payments": "/payments",
                "reports": "/reports",
            }
        }

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "installment_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )


# Create the app instance for uvicorn
app = create_app()
