# loveslices/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loveslices.config import settings
from loveslices.core.db import init_db, close_db
from loveslices.core.errors import DomainError

from loveslices.api.v1.routers import (
    auth,
    partners,
    questions,
    loveslices as loveslices_router,
    starters,
    conversations,
    journal,
)
from loveslices.api.v1.routers.ws import router as ws_router

logger = logging.getLogger("uvicorn.error")

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# CORS (with Cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    # Same {"detail": {...}} shape as HTTPException with a dict detail
    logger.info("[api] %s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

# REST
app.include_router(auth.router, prefix="/api/v1")
app.include_router(partners.router, prefix="/api/v1")
app.include_router(questions.router, prefix="/api/v1")
app.include_router(loveslices_router.router, prefix="/api/v1")
app.include_router(starters.router, prefix="/api/v1")
app.include_router(conversations.router, prefix="/api/v1")
app.include_router(journal.router, prefix="/api/v1")

# WebSocket
app.include_router(ws_router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
