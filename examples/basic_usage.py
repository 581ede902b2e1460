#!/usr/bin/env python3
"""Programmatic deployment example.

This demonstrates using the deployer components directly:

* load settings from `.env`
* hand a generic webhook payload to the request handler
* print the outcome and the persisted deployment records
"""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence

from fetch_deployer.config import DeployerSettings
from fetch_deployer.logging import configure_logging
from fetch_deployer.services import build_services


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", help="Repository url to fetch from")
    parser.add_argument("--branch", default="", help="Branch named in the trigger")
    args = parser.parse_args(argv)

    settings = DeployerSettings()
    configure_logging(settings.log_level)
    services = build_services(settings)

    payload = json.dumps({"url": args.url, "branch": args.branch, "deployer": "example"})
    result = services.handler.handle(payload, {})
    print(f"{result.status_code} {result.state.value}: {result.message}")

    for record in services.deployments.list():
        print(f"{record.deployment_id} {record.status} {record.commit or '-'}")

    return 0 if result.status_code == 200 else 1


if __name__ == "__main__":
    raise SystemExit(main())
