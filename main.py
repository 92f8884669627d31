"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import checkout as checkout_routes
from api.routes import orders as orders_routes
from api.routes import payments as payments_routes
from api.routes import webhooks as webhooks_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.checkout_service import CheckoutService
from application.services.payment_service import DirectPaymentService
from application.services.reconciliation_service import ReconciliationService
from core.config import settings
from core.settings import payment_settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import build_engine_from_settings, build_session_factory, create_tables
from infrastructure.external.payments import get_checkout_gateway, get_direct_charge_gateway
from infrastructure.tasks.webhook_worker import ReconciliationWorker
from infrastructure.unit_of_work import sqlalchemy_uow_factory


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：显式构建组件并挂到 app.state"""
    engine = build_engine_from_settings(settings)
    # 开发环境自动建表；生产环境由 DBA/迁移工具负责
    if settings.DEBUG and settings.database.create_tables_on_startup:
        await create_tables(engine)
        logger.info("database_initialized", message="Database tables created (development)")

    uow_factory = sqlalchemy_uow_factory(build_session_factory(engine))
    checkout_gateway = get_checkout_gateway(payment_settings)
    direct_gateway = get_direct_charge_gateway(payment_settings)

    reconciliation = ReconciliationService(
        uow_factory,
        checkout_gateway,
        max_conflict_retries=payment_settings.reconcile_max_conflict_retries,
    )
    worker = ReconciliationWorker(
        reconciliation.process_webhook,
        queue_size=payment_settings.worker.queue_size,
        concurrency=payment_settings.worker.concurrency,
        shutdown_timeout=payment_settings.worker.shutdown_timeout,
    )

    app.state.checkout_service = CheckoutService(uow_factory, checkout_gateway)
    app.state.reconciliation_service = reconciliation
    app.state.direct_payment_service = DirectPaymentService(uow_factory, direct_gateway)
    app.state.reconciliation_worker = worker
    worker.start()
    logger.info("application_started", environment=settings.ENVIRONMENT)

    try:
        yield
    finally:
        # 先排空 webhook 队列，再关闭外部连接
        await worker.stop()
        await checkout_gateway.aclose()
        await direct_gateway.aclose()
        await engine.dispose()
        logger.info("application_shutdown", message="Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Storefront checkout and payment settlement API",
    )

    # 添加中间件（注意顺序：从下往上执行）
    # 1. 日志中间件（依赖request_id）
    app.add_middleware(LoggingMiddleware)
    # 2. Request ID中间件（最外层，为后续中间件提供request_id）
    app.add_middleware(RequestIDMiddleware)
    # 3. CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(checkout_routes.router, prefix="/api/v1")
    app.include_router(orders_routes.router, prefix="/api/v1")
    app.include_router(webhooks_routes.router, prefix="/api/v1")
    app.include_router(payments_routes.router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy"}, message="ok")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
