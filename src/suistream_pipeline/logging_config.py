import logging
import logging.config


def setup_structured_logging(level: str = "INFO"):
    """
    Configures Python's logging to output logs in a structured JSON format,
    so phase transitions, retries and failures can be queried by field.
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
            }
        },
        "handlers": {
            "json": {
                "class": "logging.StreamHandler",
                "formatter": "json"
            }
        },
        "root": {
            "handlers": ["json"],
            "level": level.upper()
        }
    }
    logging.config.dictConfig(config)
