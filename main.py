from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api import admin, amc_assets, amc_contracts, auth, contact, email, service_requests, vendors
from app.config import settings
from app.database import engine
from app.models import Base
from app.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from app.utils.responses import (
    APIError, api_error_handler, http_exception_handler, unhandled_exception_handler, validation_exception_handler,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Service Marketplace API", version="1.0.0")

app.state.limiter = limiter

app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(amc_contracts.router, prefix="/api/amc-contracts", tags=["AMC Contracts"])
app.include_router(amc_assets.router, prefix="/api/amc-contracts", tags=["AMC Assets"])
app.include_router(service_requests.router, prefix="/api/service-requests", tags=["Service Requests"])
app.include_router(vendors.router, prefix="/api/vendors", tags=["Vendors"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
app.include_router(contact.router, prefix="/api/contact", tags=["Contact"])
app.include_router(email.router, prefix="/api/email", tags=["Email"])


@app.get("/")
async def root():
    return {"message": "Service Marketplace API is running"}


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "email": settings.email_configured,
            "storage": bool(settings.aws_access_key_id and settings.aws_secret_access_key),
        }
    }
