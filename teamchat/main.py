from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from teamchat.config import settings
from teamchat.core.logging import setup_logging
from teamchat.database import init_models
from teamchat.api import conversations, messages, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_models()
    logger.info(f"Team chat service started ({settings.ENVIRONMENT})")
    yield


app = FastAPI(
    title="Team Chat API",
    description="Conversations, messages, reactions, read receipts and typing presence",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Every failure leaves as {"error": "..."} so clients can show it verbatim
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_messages = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"] if loc != "body")
        message = error.get("msg", "Validation error")
        error_messages.append(f"{field}: {message}" if field else message)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "; ".join(error_messages) or "Invalid request"}
    )


# Include routers
app.include_router(conversations.router, prefix=f"{settings.API_PREFIX}/conversations", tags=["Conversations"])
app.include_router(messages.router, prefix=f"{settings.API_PREFIX}/conversations", tags=["Messages"])
app.include_router(users.router, prefix=f"{settings.API_PREFIX}/users", tags=["Users"])

@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "teamchat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
