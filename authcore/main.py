from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from authcore.api.dependencies import get_janitor
from authcore.api.endpoints import auth, biometric, mfa
from authcore.core.config import settings
from authcore.core.errors import AuthError
from authcore.core.logging import capture_error, init_sentry, setup_logging
from authcore.db.base import Base
from authcore.db.session import engine
from authcore.logging import get_logger

# Initialize logging and error tracking
setup_logging()
init_sentry()

logger = get_logger("auth.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await get_janitor().drain()
    await engine.dispose()


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="""
## Authentication

- **Password login** at `POST /api/auth/login`. Accounts with MFA enabled receive an
  `mfa_token` that must be exchanged at `POST /api/auth/mfa/verify-login`.
- **Biometric login**: request a challenge for the device, sign it with the device key
  and send it to `POST /api/auth/biometric/authenticate`.
- Access tokens are short-lived; use `POST /api/auth/refresh` to rotate the refresh token.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

origins = [
    settings.FRONTEND_URL,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path)
    capture_error(exc, context={"request": {"method": request.method, "path": request.url.path}})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(mfa.router, prefix="/api/auth/mfa", tags=["mfa"])
app.include_router(biometric.router, prefix="/api/auth/biometric", tags=["biometric"])


@app.get("/")
def root():
    return {"message": f"Welcome to the {settings.APP_NAME} API. OpenAPI docs at /docs"}
