import json
import logging
import sys


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Install one stdout handler on the root logger.
    Calling it again only changes the level.
    """
    logger = logging.getLogger()
    if not any(getattr(h, "_navcore", False) for h in logger.handlers):
        h = logging.StreamHandler(sys.stdout)
        h._navcore = True
        if json_output:
            h.setFormatter(JsonFormatter())
        else:
            h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(h)
    logger.setLevel(level)
    return logger
