"""dictConfig applied at application start-up.

Only tunes third-party loggers; the ``dockit`` namespace is configured by
``app.core.logging.setup_logging``.
"""

from app.core.logging import DATE_FORMAT, LOG_FORMAT

LOGGING_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": LOG_FORMAT,
            "datefmt": DATE_FORMAT,
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "sqlalchemy.engine": {"level": "WARNING", "propagate": True},
        "uvicorn.access": {"level": "WARNING", "propagate": True},
    },
    "root": {"level": "INFO", "handlers": ["console"]},
}
