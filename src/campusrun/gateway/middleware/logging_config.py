"""structlog 配置模块

CAMPUSRUN_LOG_FORMAT:
  dev (默认)  ConsoleRenderer 彩色输出
  json        每行一个 JSON 对象，异常栈展开为字符串
CAMPUSRUN_LOG_LEVEL: 标准 logging 级别名，非法值回退 INFO
Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，未开启时只输出本地日志。
"""

import logging
import os

import structlog

_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _resolve_level(raw: str) -> int:
    name = raw.strip().upper()
    if name not in _LEVELS:
        return logging.INFO
    return getattr(logging, name)


def setup_logging() -> None:
    """初始化 structlog + 标准库 logging

    uvicorn / sqlite 等第三方日志经 foreign_pre_chain 走同一套渲染。
    """
    log_format = os.environ.get("CAMPUSRUN_LOG_FORMAT", "dev").strip().lower()
    level = _resolve_level(os.environ.get("CAMPUSRUN_LOG_LEVEL", "INFO"))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        final_processors = [structlog.processors.format_exc_info, renderer]
    else:
        final_processors = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final_processors,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def setup_logfire(app=None) -> bool:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE=true 时启用（需要 LOGFIRE_TOKEN）；
    初始化失败只记录 warning，不影响服务启动。

    Returns:
        是否已启用 Logfire
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="campusrun-gateway")
        if app is not None:
            logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error_type=type(e).__name__,
            message="Logfire 初始化失败，降级为纯本地日志",
        )
        return False
    return True
