"""
Structured logging configuration
"""
import functools
import logging
import sys
import time

import structlog

from adaptiquiz import config


def configure_logging():
    """Configure structlog to emit one JSON object per event on stdout"""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def get_logger(name: str = None):
    return structlog.get_logger(name)


def log_performance(func_name: str):
    """Decorator logging how long a call took and whether it raised"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("performance")
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    "function_failed",
                    function=func_name,
                    duration_seconds=round(time.perf_counter() - start, 4),
                    error=str(e),
                    status="error"
                )
                raise
            logger.info(
                "function_completed",
                function=func_name,
                duration_seconds=round(time.perf_counter() - start, 4),
                status="success"
            )
            return result
        return wrapper
    return decorator


def log_api_request(request, response=None, process_time=None):
    """Log the start of a request, or its completion when a response is given"""
    logger = get_logger("api")

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    if response is None:
        logger.info("api_request_started", **log_data)
        return

    log_data.update({
        "status_code": response.status_code,
        "response_time": process_time,
    })
    logger.info("api_request_completed", **log_data)
