# backend/trainingdb/serve.py
"""
Production entry point: `python -m trainingdb.serve`.

Runs behind the reverse proxy that terminates TLS, so only plain HTTP
options are exposed here.
"""

import logging
import os
from typing import Any, Dict

import uvicorn

from trainingdb.apps.certificates import storage as certificate_storage

logger = logging.getLogger("trainingdb.serve")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def configure_logging(level: str) -> None:
    """Application loggers share uvicorn's level so `extra` context reaches stdout."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("trainingdb").setLevel(level.upper())


def server_options() -> Dict[str, Any]:
    reload_enabled = _env_flag("RELOAD")
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "reload": reload_enabled,
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1"),
        "timeout_keep_alive": int(os.getenv("KEEP_ALIVE_SECONDS", "5")),
    }
    # uvicorn ignores workers when reloading.
    if not reload_enabled:
        options["workers"] = max(1, int(os.getenv("WEB_CONCURRENCY", "1")))
    return options


def main() -> None:
    options = server_options()
    configure_logging(options["log_level"])
    root = certificate_storage.storage_root()
    logger.info(
        "Starting training portal API",
        extra={"host": options["host"], "port": options["port"], "certificate_storage": str(root)},
    )
    uvicorn.run("trainingdb.main:app", **options)


if __name__ == "__main__":
    main()
