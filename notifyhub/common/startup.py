"""Startup-time helpers for safe config logging."""

from notifyhub.common.config import settings
from notifyhub.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")


def _safe_value(field: str) -> str:
    """Return the effective setting, redacted when the name looks secret."""

    if not hasattr(settings, field):
        return "<unset>"
    if any(marker in field for marker in SECRET_MARKERS) and not field.endswith("_partition_key"):
        return "<redacted>"
    return str(getattr(settings, field))


def log_startup_config(service_name: str, fields: list[str]) -> None:
    """Log selected effective settings for quick troubleshooting."""

    config = {"service": service_name}
    for field in fields:
        config[field] = _safe_value(field)
    logger.info("startup_config=%s", config)
