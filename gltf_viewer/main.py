"""
Onshape GLTF Viewer - 服务入口
OAuth 登录、GLTF 转换触发与轮询、webhook 回调
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from redis.exceptions import RedisError
from starlette.middleware.sessions import SessionMiddleware

from gltf_viewer import __version__
from gltf_viewer.api import api_router, oauth_router
from gltf_viewer.api.dependencies import reset_correlation_store
from gltf_viewer.core.config import get_settings
from gltf_viewer.core.errors import ErrorCode, OnshapeRequestError
from gltf_viewer.utils.cache import close_redis, init_redis, redis_healthy
from gltf_viewer.utils.logging import setup_logging

# 加载配置
settings = get_settings()

# 设置日志
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("Starting Onshape GLTF Viewer...")

    # 初始化Redis连接 (关联表 translationId -> 状态)
    if settings.REDIS_ENABLED:
        await init_redis()
    reset_correlation_store()

    yield

    logger.info("Shutting down Onshape GLTF Viewer...")
    await close_redis()
    reset_correlation_store()


app = FastAPI(
    title="Onshape GLTF Viewer",
    description="Translate Onshape elements to GLTF and serve them to the viewer",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# 会话 cookie: 查看器运行在 Onshape iframe 内, 需要 SameSite=None
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    same_site="none" if settings.SESSION_HTTPS_ONLY else "lax",
    https_only=settings.SESSION_HTTPS_ONLY,
)


@app.exception_handler(OnshapeRequestError)
async def onshape_error_handler(request: Request, exc: OnshapeRequestError) -> JSONResponse:
    logger.warning(
        "onshape_request_failed",
        extra={"status_code": exc.status_code, "error": str(exc.body)},
    )
    return JSONResponse({"error": exc.body, "code": exc.code.value}, status_code=500)


@app.exception_handler(RedisError)
async def store_error_handler(request: Request, exc: RedisError) -> JSONResponse:
    logger.error("correlation_store_failed", extra={"error": str(exc)})
    return JSONResponse({"error": str(exc), "code": ErrorCode.STORE_ERROR.value}, status_code=500)


# 注册路由
app.include_router(oauth_router)
app.include_router(api_router, prefix="/api")
app.mount("/metrics", make_asgi_app())


@app.get("/")
async def root(request: Request):
    """根路径: 查看器入口 (渲染由前端完成)"""
    return {
        "name": "Onshape GLTF Viewer",
        "version": __version__,
        "status": "running",
        "signed_in": bool(request.session.get("access_token")),
        "document": {
            "documentId": request.query_params.get("documentId"),
            "workspaceId": request.query_params.get("workspaceId"),
            "elementId": request.query_params.get("elementId"),
        },
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    current_settings = get_settings()
    if current_settings.REDIS_ENABLED:
        redis_status = "up" if await redis_healthy() else "down"
    else:
        redis_status = "disabled"
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "up",
            "redis": redis_status,
        },
        "runtime": {
            "python_version": sys.version.split(" ")[0],
        },
        "config": {
            "correlation_backend": current_settings.CORRELATION_BACKEND,
            "correlation_ttl_seconds": current_settings.CORRELATION_TTL_SECONDS,
            "onshape_timeout_seconds": current_settings.ONSHAPE_TIMEOUT_SECONDS,
            "webhook_callback_url": current_settings.webhook_callback_url,
        },
    }


@app.get("/ready")
async def readiness_check():
    """就绪检查"""
    if settings.REDIS_ENABLED and settings.CORRELATION_BACKEND == "redis":
        if not await redis_healthy():
            logger.error("readiness_check_failed", extra={"error": "redis not ready"})
            raise HTTPException(status_code=503, detail="Redis not ready")
    return {"status": "ready"}


if __name__ == "__main__":
    uvicorn.run(
        "gltf_viewer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower(),
    )
