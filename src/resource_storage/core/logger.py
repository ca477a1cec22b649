from logging import config as logging_config

LOG_FORMAT = "[%(asctime)s | %(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%m.%d.%Y %H:%M:%S"
LOG_DEFAULT_HANDLERS = [
    "console",
]


def build_logging(level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {"format": LOG_FORMAT, "datefmt": LOG_DATE_FORMAT},
        },
        "handlers": {
            "console": {
                "level": "DEBUG",
                "class": "logging.StreamHandler",
                "formatter": "verbose",
            },
        },
        "loggers": {
            "resource_storage": {
                "handlers": LOG_DEFAULT_HANDLERS,
                "level": level,
                "propagate": False,
            },
            "elastic_transport": {
                "handlers": LOG_DEFAULT_HANDLERS,
                "level": "WARNING",
                "propagate": False,
            },
        },
    }



def setup_logging(level: str = "INFO") -> None:
    logging_config.dictConfig(build_logging(level))
