from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import get_settings
from .db import Base, engine
from .logging_config import get_logger, setup_logging
from .api.v1 import api_router as api_v1_router
from .models import Room  # noqa: F401  テーブル登録のため
from .services.errors import RoomError
from .services.notifications import LiveConnectionRegistry

settings = get_settings()
setup_logging(
    log_level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    audit_log_file=settings.AUDIT_LOG_FILE,
)
logger = get_logger(__name__)

# モデルからテーブル作成（開発用）
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Rooms API",
    version="0.1.0",
)

# このインスタンスが持つライブ接続
app.state.live_connections = LiveConnectionRegistry()


@app.exception_handler(RoomError)
async def room_error_handler(request: Request, exc: RoomError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "code": "invalid_input",
            "message": "One or more parameters of your request are invalid.",
            "errors": exc.errors(),
        }),
    )


# ▼ API ルーター
app.include_router(api_v1_router, prefix="/api")


@app.get("/")
def read_root():
    return {"message": "Rooms API is running"}
