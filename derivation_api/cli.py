"""CLI entry point for the derivation service."""

from __future__ import annotations

import argparse
import logging

import uvicorn

from common.config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Raw-to-derived sensor value pipeline")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    args = p.parse_args()

    logger.info(
        "Config: workers=%d mqtt=%s calibration_file=%s policy=%s",
        settings.pipeline_workers,
        settings.mqtt_enabled,
        settings.calibration_file,
        settings.missing_calibration_policy,
    )
    uvicorn.run("derivation_api.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
