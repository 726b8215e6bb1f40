"""Command line entry point: serve the claim API or evaluate one file."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from .api import StaticTokenAuthenticator, create_app
from .config import HTTP_HOST, HTTP_PORT, LOG_LEVEL
from .errors import ClaimError, InvalidPath
from .importers import load_activity_file, parse_polyline
from .models import ClaimRequest, Profile
from .notifications import default_notifier
from .services import ClaimService, ClaimServiceConfig
from .storage import InMemoryStore, load_store
from .utils import json_dumps_sorted


def _setup_logging(level: str = LOG_LEVEL) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _load(seed: str | None) -> InMemoryStore:
    return load_store(seed) if seed else InMemoryStore()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="territory-conquest",
        description="Resolve running-path territory claims.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the claim HTTP API over an in-memory store")
    serve.add_argument("--seed", help="JSON document with profiles, territories and catalogs")
    serve.add_argument("--host", default=HTTP_HOST)
    serve.add_argument("--port", type=int, default=HTTP_PORT)

    claim = sub.add_parser("claim", help="Evaluate one GPX/TCX file or encoded polyline and print the result")
    claim.add_argument("file", nargs="?", help="Path to a .gpx or .tcx activity")
    claim.add_argument("--polyline", help="Google encoded polyline used instead of a file")
    claim.add_argument("--duration", type=float, help="Run duration in seconds (with --polyline)")
    claim.add_argument("--user", required=True, help="Claiming user id")
    claim.add_argument("--seed", help="JSON document with the current map state")
    return parser


def _serve(args: argparse.Namespace) -> int:
    store = _load(args.seed)
    notifier = default_notifier()
    service = ClaimService(
        ClaimServiceConfig(store=store, catalog=store, notifier=notifier)
    )
    app = create_app(service, StaticTokenAuthenticator.from_config())
    logging.info("Serving claims on http://%s:%d", args.host, args.port)
    app.run(host=args.host, port=args.port)
    return 0


def _claim_request(args: argparse.Namespace) -> ClaimRequest:
    if args.polyline:
        return parse_polyline(args.polyline, args.duration or 0.0)
    if not args.file:
        raise InvalidPath("Provide an activity file or --polyline")
    return load_activity_file(args.file)


def _claim(args: argparse.Namespace) -> int:
    store = _load(args.seed)
    if store.load_profile(args.user) is None:
        store.add_profile(Profile(id=args.user, username=args.user))
    service = ClaimService(
        ClaimServiceConfig(store=store, catalog=store, notifier=store)
    )
    try:
        request = _claim_request(args)
        result = service.process(args.user, request)
    except ClaimError as exc:
        print(json_dumps_sorted(exc.to_payload(), indent=2))
        logging.error("Claim rejected (%s): %s", exc.code, exc)
        return 1
    print(json_dumps_sorted(result.to_dict(), indent=2))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    _setup_logging()
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        return _serve(args)
    return _claim(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
