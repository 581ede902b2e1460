"""CLI entrypoint for the deployment coordinator."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from fetch_deployer import __version__
from fetch_deployer.config import DeployerSettings
from fetch_deployer.handler import RequestState
from fetch_deployer.logging import configure_logging
from fetch_deployer.services import build_services

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fetch-deployer",
        description="Webhook-triggered fetch and deploy coordinator",
    )
    parser.add_argument("--version", action="version", version=f"fetch-deployer {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the webhook server")
    serve.add_argument("--host", default=None, help="Bind address (defaults to SERVER_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (defaults to SERVER_PORT)")

    deploy = subparsers.add_parser(
        "deploy",
        help="Trigger a deployment manually, exactly as a generic webhook payload would",
    )
    deploy.add_argument("--url", required=True, help="Repository url to fetch from")
    deploy.add_argument("--branch", default="", help="Branch named in the trigger")
    deploy.add_argument("--deployer", default="cli", help="Attribution for the deployment")
    deploy.add_argument("--old-ref", default="", help="Revision before the push")
    deploy.add_argument("--new-ref", default="", help="Revision after the push")

    settings = subparsers.add_parser("settings", help="Read or change deployment settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("list", help="Print all settings as JSON")
    get = settings_sub.add_parser("get", help="Print one setting")
    get.add_argument("key")
    set_ = settings_sub.add_parser("set", help="Change one setting")
    set_.add_argument("key")
    set_.add_argument("value")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = DeployerSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "serve":
            import uvicorn

            from fetch_deployer.server.app import create_app

            uvicorn.run(
                create_app(settings),
                host=args.host or settings.server_host,
                port=args.port or settings.server_port,
                log_config=None,
            )
            return 0

        services = build_services(settings)

        if args.command == "deploy":
            payload = json.dumps(
                {
                    "url": args.url,
                    "branch": args.branch,
                    "deployer": args.deployer,
                    "oldRef": args.old_ref,
                    "newRef": args.new_ref,
                }
            )
            result = services.handler.handle(payload, {})
            print(f"{result.status_code} {result.state.value}: {result.message}")
            if result.state == RequestState.COMPLETED:
                return 0
            if result.state == RequestState.DEFERRED:
                return 3
            return 2

        if args.command == "settings":
            store = services.settings_store
            if args.settings_command == "list":
                print(json.dumps(store.all(), indent=2, sort_keys=True))
                return 0
            if args.settings_command == "get":
                value = store.get_value(args.key)
                if value is None:
                    print(f"{args.key} is not set", file=sys.stderr)
                    return 1
                print(value)
                return 0
            if args.settings_command == "set":
                store.set_value(args.key, args.value)
                logger.info("Setting updated", extra={"key": args.key})
                return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
