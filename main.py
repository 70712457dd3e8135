"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from api.dependencies import Container, build_container
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import flow as flow_routes
from api.routes import newsletter as newsletter_routes
from api.routes import scheduling as scheduling_routes
from core.config import Settings, load_settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from infrastructure.database import create_tables


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, *, container: Optional[Container] = None) -> FastAPI:
    """
    创建应用实例

    Args:
        settings: 已加载的配置；缺省时从环境加载（缺少密钥直接失败）
        container: 预先组装好的依赖容器（测试注入替身）
    """
    settings = settings or (container.settings if container else load_settings())
    # 在入口处显式配置日志，避免模块导入时的副作用
    configure_logging(debug=settings.DEBUG)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        if container.engine is not None:
            await create_tables(container.engine)
            logger.info("database_initialized")
        logger.info(
            "application_started",
            environment=settings.ENVIRONMENT,
            calendar_enabled=container.calendar is not None,
        )
        yield
        await container.aclose()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Maka Tatuajes: reservas con abono vía Flow, agenda y newsletter",
    )
    app.state.container = container

    # 添加中间件（注意顺序：后添加的先执行）
    app.add_middleware(
        LoggingMiddleware,
        enable_body_log=settings.LOG_REQUEST_BODY and settings.DEBUG,
        max_body_bytes=settings.LOG_REQUEST_BODY_MAX_BYTES,
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(flow_routes.router, prefix="/api")
    app.include_router(newsletter_routes.router, prefix="/api")
    if container.calendar is not None:
        app.include_router(scheduling_routes.router, prefix="/api")
    else:
        logger.info("scheduling_routes_disabled", reason="calendar credentials not configured")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return {"success": True, "status": "healthy", "version": settings.VERSION}

    app.mount("/metrics", make_asgi_app())
    return app


# uvicorn main:create_app --factory
if __name__ == "__main__":
    import uvicorn

    _settings = load_settings()
    uvicorn.run(
        create_app(_settings),
        host="0.0.0.0",
        port=8000,
        log_level="debug" if _settings.DEBUG else "info",
    )
