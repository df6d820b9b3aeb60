#!/usr/bin/env python3
"""
Camera-PPG Vital Signs Estimation — API server entry point
============================================================
Builds the FastAPI app and serves it with Uvicorn.

    python main.py --host 127.0.0.1 --port 8080 --log-level debug

`--log-level` drives both Uvicorn's access log and the project loggers.

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool, NOT a medical device.
    All readings (HR, HRV, SpO2, Blood Pressure, Stress) are ESTIMATES
    derived from fingertip camera photoplethysmography.
    Do NOT use these readings for clinical diagnosis or treatment decisions.
"""

import argparse

import uvicorn

from api.app import create_app
from utils.logger import get_logger, set_level

logger = get_logger("main")

_LEVELS = ["critical", "error", "warning", "info", "debug"]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Camera-PPG vital signs API server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="info", choices=_LEVELS)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    args = parse_args(argv)
    set_level(args.log_level)
    logger.info("Serving on http://%s:%d (docs at /docs)", args.host, args.port)

    uvicorn.run(
        create_app(),
        host=args.host,
        port=args.port,
        reload=False,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
