from __future__ import annotations

import argparse
import logging

import uvicorn

from salesdesk.internal_core.config import load_config


def main() -> None:
    cfg = load_config()
    parser = argparse.ArgumentParser(description="Run the salesdesk transcript/report server")
    parser.add_argument("--host", default=cfg.SALESDESK_HOST)
    parser.add_argument("--port", type=int, default=cfg.SALESDESK_PORT)
    args = parser.parse_args()

    logging.basicConfig(
        level=cfg.SALESDESK_LOG_LEVEL.upper(),
        format="[%(asctime)s] [%(name)s] %(message)s",
    )
    logger = logging.getLogger("salesdesk.serve")
    logger.info("listening on ws://%s:%d/ws", args.host, args.port)
    logger.info("log dir: %s", cfg.log_dir_path())
    if cfg.SALESDESK_LOG_FILE:
        logger.info("message log pinned to: %s", cfg.fixed_log_file_path())

    uvicorn.run("salesdesk.api.main:app", host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
