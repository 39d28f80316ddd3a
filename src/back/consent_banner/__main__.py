"""Run the consent banner gateway (``python -m consent_banner``)."""
from __future__ import annotations

import argparse

import uvicorn

from .api.app import create_app
from .api.config import GatewayConfig
from .observability import configure_logging


def parse_args(config: GatewayConfig) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='consent_banner')
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=config.port)
    parser.add_argument("--log-level", default=None)
    return parser.parse_args()


def main() -> int:
    config = GatewayConfig()
    args = parse_args(config)
    configure_logging(
        level=args.log_level,
        environment=config.environment,
        secrets=[config.asset_reload_token, config.cookie_secret],
    )
    config.port = args.port
    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        server_header=False,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
