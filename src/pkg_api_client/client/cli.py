# src/pkg_api_client/client/cli.py

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from ..application.session import AuthSession
from ..domain.exceptions import ApiError
from .env import create_api_client_from_env

DEFAULT_TOKEN_FILE = str(Path.home() / ".config" / "pkg_api_client" / "tokens.json")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pkg-api-client",
        description="Call the job-board API with a persisted, auto-refreshing session",
    )
    parser.add_argument(
        "--token-file",
        help="Where tokens are kept between runs "
             "(default: env JOB_BOARD_TOKEN_FILE or ~/.config/pkg_api_client/tokens.json).",
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="-v for INFO, -vv for DEBUG.")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in and store the token pair.")
    login.add_argument("--email", "-e", required=True)
    login.add_argument("--password", "-p", help="Prompted for when omitted.")

    sub.add_parser("logout", help="Revoke the refresh token and clear the session.")
    sub.add_parser("whoami", help="Show the claims of the stored access token.")

    req = sub.add_parser("request", help="Send an authenticated request.")
    req.add_argument("method", type=str.upper, choices=["GET", "POST", "PUT", "PATCH", "DELETE"])
    req.add_argument("url", help="Path relative to JOB_BOARD_API_URL, e.g. /jobs")
    req.add_argument("--data", "-d", help="JSON request body.")
    req.add_argument(
        "--param",
        "-P",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter; may be repeated.",
    )
    req.add_argument("--retries", type=int, help="Override the retry budget.")

    return parser.parse_args(args=argv)


def _parse_params(pairs: Sequence[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --param {pair!r}, expected KEY=VALUE")
        params[key] = value
    return params


def _print_session_expired(login_route: str) -> None:
    sys.stderr.write(f"Session expired. Run `pkg-api-client login` ({login_route}).\n")


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    token_file = args.token_file or os.getenv("JOB_BOARD_TOKEN_FILE") or DEFAULT_TOKEN_FILE
    client = create_api_client_from_env(
        on_session_expired=_print_session_expired,
        token_file=token_file,
    )
    try:
        session = AuthSession(client)

        if args.command == "login":
            password = args.password or getpass.getpass("Password: ")
            response = await session.login(args.email, password)
            return {"user": response.get("user")}

        if args.command == "logout":
            await session.logout()
            return {}

        if args.command == "whoami":
            claims = client.token_store.get_claims()
            return {
                "authenticated": session.is_authenticated(),
                "claims": asdict(claims) if claims is not None else None,
            }

        options: dict[str, Any] = {"params": _parse_params(args.param) or None}
        if args.retries is not None:
            options["retries"] = args.retries
        body = json.loads(args.data) if args.data else None
        method = args.method.lower()
        if method == "get":
            data = await client.get(args.url, **options)
        elif method == "delete":
            data = await client.delete(args.url, **options)
        else:
            data = await getattr(client, method)(args.url, body, **options)
        return {"data": data}
    finally:
        await client.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING - 10 * min(args.verbose, 2),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        summary = asyncio.run(_run(args))
    except ApiError as exc:
        json.dump({"ok": False, "error": exc.to_dict()}, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 1
    except ValueError as exc:
        json.dump({"ok": False, "error": {"code": "INVALID_ARGUMENT", "message": str(exc)}}, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 2

    json.dump({"ok": True, **summary}, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
