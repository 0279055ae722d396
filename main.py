"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import notifications as notifications_routes
from api.routes import orders as orders_routes
from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.notification_ingestor import NotificationIngestor
from application.services.order_payment_service import OrderPaymentCoordinator
from application.services.status_resolver import PaymentStatusResolver
from application.services.terminal_janitor import TerminalQueueJanitor
from application.utils.retry import RetryPolicy
from core.config import settings
from core.settings import gateway_settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.cache import create_confirmation_store
from infrastructure.database import create_tables
from infrastructure.external.payments import get_point_gateway
from infrastructure.scheduling import PeriodicTask
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)

SIMULATED_DEVICE_ID = "simulated-point"


def init_point_services(app: FastAPI) -> None:
    """装配支付组件到 app.state"""
    cfg = gateway_settings
    gateway = get_point_gateway(cfg)
    device_id = cfg.device_id or SIMULATED_DEVICE_ID
    store = create_confirmation_store(cfg.cache.redis_url)
    janitor = TerminalQueueJanitor(
        gateway,
        device_id,
        delete_policy=RetryPolicy(
            max_attempts=cfg.janitor.delete_attempts,
            interval=cfg.janitor.delete_retry_delay_seconds,
        ),
        clear_pause=cfg.janitor.clear_queue_pause_seconds,
    )
    resolver = PaymentStatusResolver(
        gateway,
        store,
        janitor,
        search_window_minutes=cfg.search.window_minutes,
        search_limit=cfg.search.limit,
    )
    app.state.gateway = gateway
    app.state.device_id = device_id
    app.state.store = store
    app.state.janitor = janitor
    app.state.resolver = resolver
    app.state.ingestor = NotificationIngestor(gateway, store, webhook_secret=cfg.webhook.secret)
    app.state.coordinator = OrderPaymentCoordinator(
        SQLAlchemyUnitOfWork,
        gateway,
        resolver,
        janitor,
        device_id,
        poll_policy=RetryPolicy(max_attempts=cfg.poll.max_attempts, interval=cfg.poll.interval_seconds),
        operating_mode=cfg.operating_mode,
    )

    cache_ttl_ms = int(cfg.cache.ttl_seconds * 1000)
    app.state.periodic_tasks = [
        PeriodicTask(
            "confirmation-cache-eviction",
            cfg.cache.sweep_interval_seconds,
            lambda: store.evict_older_than(cache_ttl_ms),
        ),
    ]
    # 模拟终端没有队列，不需要被动清扫
    if not cfg.simulation:
        app.state.periodic_tasks.append(
            PeriodicTask("terminal-passive-sweep", cfg.janitor.passive_interval_seconds, janitor.passive_sweep)
        )
    logger.info(
        "point_services_initialized",
        provider=gateway.provider,
        device_id=device_id,
        simulation=cfg.simulation,
    )


async def shutdown_point_services(app: FastAPI) -> None:
    for task in getattr(app.state, "periodic_tasks", []):
        await task.stop()
    coordinator = getattr(app.state, "coordinator", None)
    if coordinator is not None:
        await coordinator.shutdown()
    gateway = getattr(app.state, "gateway", None)
    if gateway is not None:
        await gateway.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 订单表很小，启动时直接建表
    await create_tables()
    logger.info("database_initialized", url=settings.database.url.split("://", 1)[0])

    init_point_services(app)
    for task in app.state.periodic_tasks:
        task.start()

    yield

    await shutdown_point_services(app)
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="自助点餐机 Point 终端支付确认服务",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payments_routes.router, prefix="/api")
app.include_router(notifications_routes.router, prefix="/api")
app.include_router(orders_routes.router, prefix="/api")


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(
        data={"status": "healthy", "simulation": gateway_settings.simulation},
        message="OK",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
