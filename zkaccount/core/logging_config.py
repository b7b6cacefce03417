"""
Logging configuration for the ledger service and client tooling
"""
import sys
from datetime import datetime
from loguru import logger
from zkaccount.core.config import get_settings


def configure_logging():
    """
    Configure loguru sinks for the current environment
    """
    settings = get_settings()

    # Remove default logger
    logger.remove()

    # Console logging with appropriate level
    logger.add(
        sys.stderr,
        format=settings.log_format,
        level=settings.log_level,
        colorize=True if settings.environment == "development" else False,
        backtrace=True,
        diagnose=True if settings.environment == "development" else False
    )

    # File logging if specified
    if settings.log_file:
        logger.add(
            settings.log_file,
            format=settings.log_format,
            level=settings.log_level,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            compression="gz",
            backtrace=True,
            diagnose=False  # claims and proofs must not end up in file logs
        )

    # Structured logging for production
    if settings.environment == "production":
        logger.add(
            sys.stdout,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}",
            level=settings.log_level,
            serialize=True,
            backtrace=False,
            diagnose=False
        )

    logger.info(f"Logging configured for {settings.environment} environment")


class RequestLoggingMiddleware:
    """
    Middleware for logging requests and responses
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            start_time = datetime.now()

            async def send_wrapper(message):
                if message["type"] == "http.response.start":
                    status_code = message["status"]
                    processing_time = (datetime.now() - start_time).total_seconds()

                    method = scope["method"]
                    path = scope["path"]
                    client_ip = scope["client"][0] if scope.get("client") else "unknown"

                    log_level = "WARNING" if status_code >= 400 else "INFO"
                    logger.log(
                        log_level,
                        f"Response: {status_code} {method} {path} - {processing_time:.3f}s",
                        method=method,
                        path=path,
                        status_code=status_code,
                        processing_time=processing_time,
                        client_ip=client_ip
                    )

                await send(message)

            await self.app(scope, receive, send_wrapper)
        else:
            await self.app(scope, receive, send)
