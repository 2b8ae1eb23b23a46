import logging
import re
import sys
import colorlog

# Gemini takes the API key as a query parameter, and httpx logs full request URLs
KEY_PARAM_REGEX = re.compile(r"([?&]key=)([^&\s\"']+)")


def redact_keys(text: str) -> str:
    """Mask ``key=`` query values down to their last four characters."""
    return KEY_PARAM_REGEX.sub(lambda m: f"{m.group(1)}...{m.group(2)[-4:]}", text)


class RedactKeyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_keys(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: str = "INFO"):
    log_colors = {
        'DEBUG': 'cyan',
        'INFO': 'green',
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'red,bg_white',
    }

    formatter = colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        log_colors=log_colors,
        reset=True,
        style='%'
    )

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RedactKeyFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    root_logger.handlers = []
    root_logger.addHandler(handler)

    # uvicorn access lines carry the client's query string, httpx lines the upstream URL
    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "httpx"]:
        logger = logging.getLogger(logger_name)
        logger.handlers = []
        logger.addHandler(handler)
        logger.propagate = False
