import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.csrf_guard.errors import INTERNAL_ERROR_BODY
from src.csrf_guard.middleware import CsrfCookieMiddleware
from src.demo_app.database import Base, SessionLocal, engine
from src.demo_app.routers import auth as auth_router
from src.demo_app.sessions import SessionManager


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup (and verify the DB is reachable).
    Base.metadata.create_all(bind=engine)
    app.state.session_manager = SessionManager(SessionLocal)
    yield


logger = logging.getLogger(__name__)

app = FastAPI(title="CSRF Guard demo", lifespan=lifespan)
app.add_middleware(CsrfCookieMiddleware)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: return clean JSON instead of leaking stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=INTERNAL_ERROR_BODY,
    )


app.include_router(auth_router.router)


@app.get("/health")
def health():
    return {"status": "ok"}
