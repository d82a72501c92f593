LOGGER_NAME = "cloudspace-provisioner"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {"fmt": {"format": "[%(asctime)s] [%(levelname)s] %(msg)s"}},
    "handlers": {
        "sh": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "fmt",
        },
    },
    "loggers": {LOGGER_NAME: {"level": "INFO", "handlers": ["sh"]}},
}
