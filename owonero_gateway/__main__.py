"""Run the gateway with uvicorn: ``python -m owonero_gateway``."""

from __future__ import annotations

import uvicorn

from owonero_gateway.config import settings
from owonero_gateway.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


def main() -> None:
    setup_logging(settings.log_level, json_output=settings.log_json)
    log.info(
        "gateway.listening",
        url=f"http://{settings.listen_host}:{settings.port}",
        usage="POST JSON to /api/tcp { host, port, command, payload }",
    )
    uvicorn.run(
        "owonero_gateway.main:app",
        host=settings.listen_host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
