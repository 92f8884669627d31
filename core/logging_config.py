"""
Structlog 日志配置模块

structlog 与标准库 logging 共用一条处理链；httpx、tenacity、SQLAlchemy 的日志
也走同一个渲染器。卡 token、CPF、密钥等字段在渲染前统一打码。
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List

from core.config import settings


SENSITIVE_KEYS = frozenset({
    "card_token",
    "document",
    "cpf",
    "secret_key",
    "authorization",
    "password",
})

# 第三方库只保留 WARNING 以上，避免逐请求刷屏
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


def redact_sensitive(_logger: Any, _method: str, event_dict: dict) -> dict:
    """structlog 处理器：敏感字段替换为 ***（仅顶层与一层嵌套 dict）"""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
        elif isinstance(value, dict):
            event_dict[key] = {
                k: ("***" if str(k).lower() in SENSITIVE_KEYS else v) for k, v in value.items()
            }
    return event_dict


def get_renderer() -> Any:
    """根据环境选择渲染器 (Console in DEBUG, JSON otherwise)."""
    if settings.DEBUG:
        return ConsoleRenderer(colors=False)

    # structlog 会向 serializer 传入 default 等关键字参数
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def _root_level() -> int:
    if settings.DEBUG:
        return logging.DEBUG
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """配置 structlog 并桥接标准库 logging 到同一处理链。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_root_level())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)


# 初始化配置
configure_logging()
