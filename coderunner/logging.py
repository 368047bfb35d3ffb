import json
import logging
import sys

# Run context attached with logger.x(..., extra={...})
CONTEXT_FIELDS = ("language", "container", "status", "elapsed_ms")


class JsonFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    h = logging.StreamHandler(sys.stdout)
    if json_output:
        h.setFormatter(JsonFormatter())
    else:
        h.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = [h]
