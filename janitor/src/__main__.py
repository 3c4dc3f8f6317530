from __future__ import annotations

import logging

import uvicorn

from janitor.src.api import create_app
from janitor.src.config import load_config
from janitor.src.kube import build_clients, load_kube_configuration
from janitor.src.logs import configure_logging
from janitor.src.service import build_service


def main() -> None:
    """Service entrypoint: configure logging, connect to the cluster and serve HTTP."""
    config = load_config()
    configure_logging(config.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting janitor (gitlab=%s, ref=%s)", config.gitlab_api_url, config.gitlab_ref
    )

    load_kube_configuration()
    core_api, apps_api = build_clients()
    service = build_service(config, core_api=core_api, apps_api=apps_api)
    app = create_app(service, config)

    uvicorn.run(app, host=config.host, port=config.port, log_config=None)
    logger.info("Janitor stopped")


if __name__ == "__main__":
    main()
