import logging
import sys
from pprint import pformat
from loguru import logger

# Third-party libraries that log through the standard logging module
INTERCEPTED_LOGGERS = ("uvicorn", "apscheduler", "httpx", "imapclient")


class InterceptHandler(logging.Handler):
    """
    Re-emit standard logging records through loguru.

    Adapted from the loguru docs:
    https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the library call site
        frame = logging.currentframe()
        depth = 2
        if frame is not None:
            while frame.f_code.co_filename == logging.__file__:
                if frame.f_back is None:
                    break
                frame = frame.f_back
                depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def format_record(record: dict) -> str:
    """
    Line format for the stdout sink.

    A structured ``payload`` bound via ``logger.bind(payload=...)`` is
    pretty-printed on the line below the message.
    """

    # 2025-01-01 12:34:56.789 | INFO     | otp_relay.poller:tick:88 - message
    format_string: str = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
        "<level>{level: <8}</level> | "
        "{name}:{function}:{line} - "
        "<level>{message}</level>"
    )
    payload = record["extra"].get("payload")
    if payload is not None:
        record["extra"]["payload"] = pformat(payload, indent=4, compact=True, width=88)
        format_string += "\n<level>{extra[payload]}</level>"

    format_string += "{exception}\n"
    return format_string


def get_log_level() -> str:
    """LOG_LEVEL from config; INFO while settings cannot be imported yet."""
    try:
        from app.core.settings import config

        return config.log_level.upper()
    except ImportError:
        return "INFO"


def init_logging():
    """
    Route uvicorn, apscheduler, httpx and imapclient logging through loguru
    and configure the single stdout sink.

    Call this before the application starts so early uvicorn lines use the
    same format.
    """
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(tuple(f"{prefix}." for prefix in INTERCEPTED_LOGGERS)):
            logging.getLogger(name).handlers = []

    intercept_handler = InterceptHandler()
    for name in INTERCEPTED_LOGGERS:
        logging.getLogger(name).handlers = [intercept_handler]

    log_level = get_log_level()

    logger.level("DEBUG", color="<blue>")
    logger.level("INFO", color="")
    logger.level("WARNING", color="<yellow>")
    logger.level("ERROR", color="<red>")
    logger.level("CRITICAL", color="<red>")

    logger.configure(
        handlers=[
            {
                "sink": sys.stdout,
                "level": log_level,
                "format": format_record,
                "colorize": True,
            }
        ]
    )
