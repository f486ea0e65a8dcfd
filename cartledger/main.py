"""Main FastAPI application"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cartledger.core.cache import cache
from cartledger.core.config import settings
from cartledger.core.database import close_db, init_db
from cartledger.core.exceptions import CartLedgerException
from cartledger.core.feed import ChangeFeed
from cartledger.core.logging import setup_logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging()
    logger.info(f"Starting up {settings.APP_NAME} API...")
    
    if settings.ENVIRONMENT != "test":
        await init_db()
    await cache.connect()
    
    yield
    
    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME} API...")
    await cache.disconnect()
    await close_db()

def create_app() -> FastAPI:
    """Build the application with its routers and error handling"""
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Cart, coupon and revenue reconciliation for a multi-seller marketplace",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan
    )
    
    # Change feed shared by the ledgers and revenue views
    app.state.feed = ChangeFeed()
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    @app.exception_handler(CartLedgerException)
    async def cartledger_exception_handler(request: Request, exc: CartLedgerException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.error_code,
                    "message": exc.detail
                }
            },
            headers=exc.headers
        )
    
    # Include routers
    from cartledger.api.v1 import api_router
    app.include_router(api_router, prefix="/api/v1")
    
    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}
    
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cartledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
