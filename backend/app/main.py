import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
from app.api.admin import router as admin_router
from app.api.auth import router as auth_router
from app.api.photos import router as photos_router
from app.api.slideshows import router as slideshows_router
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logging_config import configure_logging
from app.core.rate_limit import limiter
from app.services.storage import LOCAL_URL_PREFIX, is_s3_configured

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Council Photos", version="1.0.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
register_error_handlers(app)


def _allowed_origins() -> list[str]:
    origins = [settings.FRONTEND_URL.rstrip("/")]
    if settings.FRONTEND_URLS:
        extra = [item.strip().rstrip("/") for item in settings.FRONTEND_URLS.split(",") if item.strip()]
        origins.extend(extra)
    return list(dict.fromkeys(origins))

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(photos_router)
app.include_router(slideshows_router)

if not is_s3_configured():
    app.mount(
        LOCAL_URL_PREFIX,
        StaticFiles(directory=settings.LOCAL_UPLOAD_DIR, check_dir=False),
        name="uploads",
    )


@app.on_event("startup")
async def log_startup() -> None:
    storage = "s3" if is_s3_configured() else f"local ({settings.LOCAL_UPLOAD_DIR})"
    logger.info("Council Photos started, storage=%s", storage)


@app.get("/health")
async def health():
    return {"status": "ok"}
