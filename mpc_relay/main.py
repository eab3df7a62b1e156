"""Command line entry point for the relay and its party drivers.

Round functions and signature verifiers are plugged in by import path
(``package.module:attribute``), since the cryptography lives outside this
project.
"""

import argparse
import asyncio
import importlib
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
import httpx

load_dotenv()

from mpc_relay.api.config import Settings, settings as default_settings
from mpc_relay.api.logging_config import setup_logging
from mpc_relay.driver import (
    CancelToken,
    DriverOptions,
    KeygenDriver,
    RelayClient,
    ShareStore,
    SigningDriver,
)
from mpc_relay.errors import DecodeError, RelayError

logger = logging.getLogger(__name__)


def load_object(path: str) -> Any:
    """Resolve ``package.module:attribute``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got '{path}'")
    obj = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _read_payload(args) -> Optional[bytes]:
    if args.payload_hex is not None:
        try:
            return bytes.fromhex(args.payload_hex)
        except ValueError as e:
            raise DecodeError(f"Invalid hex payload: {e}") from e
    if args.payload_file is not None:
        return Path(args.payload_file).read_bytes()
    return None


async def _initiate_keygen(args, settings: Settings) -> int:
    async with RelayClient.from_settings(settings) as client:
        session_id = await client.initiate_keygen(args.t, args.n)
    print(session_id)
    return 0


async def _run_keygen(args, settings: Settings) -> int:
    factory = load_object(args.protocol)
    share_store = ShareStore(args.share_dir or settings.share_dir)
    async with RelayClient.from_settings(settings) as client:
        driver = KeygenDriver(
            client,
            factory,
            session_id=args.session_id,
            threshold=args.t,
            total_parties=args.n,
            share_store=share_store,
            options=DriverOptions.from_settings(settings),
            cancel_token=CancelToken(),
        )
        share = await driver.run()
    print(f"Session: {driver.session_id}")
    print(f"Party: {share.party_id}")
    print(f"Group Key: {share.group_key.hex()}")
    print(f"Share saved to {driver.share_path}")
    return 0


async def _run_sign(args, settings: Settings) -> int:
    factory = load_object(args.protocol)
    verifier = load_object(args.verifier)
    share = await ShareStore(Path(args.share_file).parent).load(args.share_file)
    payload = _read_payload(args)
    if args.initiate and payload is None:
        raise DecodeError("--initiate requires --payload-hex or --payload-file")

    async with RelayClient.from_settings(settings) as client:
        driver = SigningDriver(
            client,
            args.session_id,
            share,
            factory,
            verifier,
            payload=payload if args.initiate else None,
            threshold=args.t,
            total_signers=args.n,
            signer_ids=args.signers,
            options=DriverOptions.from_settings(settings),
            cancel_token=CancelToken(),
        )
        result = await driver.run()
    print(f"Signature: {result.signature.hex()}")
    if result.finalized:
        print("Transaction signed and finalized successfully.")
    else:
        print("Signing process completed successfully.")
    return 0


def _serve(args, settings: Settings) -> int:
    import uvicorn

    from mpc_relay.api.main import create_app

    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info(f"Relay listening on http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mpc-relay", description="Threshold session relay and party drivers")
    subparsers = parser.add_subparsers(dest="command")

    parser_serve = subparsers.add_parser("serve", help="Run the coordinator HTTP service.")
    parser_serve.add_argument("--host", type=str, default=None)
    parser_serve.add_argument("--port", type=int, default=None)

    parser_init = subparsers.add_parser("initiate-keygen", help="Create a keygen session and print its ID.")
    parser_init.add_argument("--t", type=int, required=True, help="Threshold.")
    parser_init.add_argument("--n", type=int, required=True, help="Number of parties.")

    parser_keygen = subparsers.add_parser("keygen", help="Take part in a keygen session.")
    parser_keygen.add_argument("session_id", nargs="?", default=None,
                               help="Session to join; omit with --t/--n to create one.")
    parser_keygen.add_argument("--protocol", required=True, help="Keygen round function factory (module:attr).")
    parser_keygen.add_argument("--t", type=int, default=None)
    parser_keygen.add_argument("--n", type=int, default=None)
    parser_keygen.add_argument("--share-dir", type=str, default=None)

    parser_sign = subparsers.add_parser("sign", help="Take part in a signing session.")
    parser_sign.add_argument("session_id")
    parser_sign.add_argument("--share-file", required=True)
    parser_sign.add_argument("--protocol", required=True, help="Signing round function factory (module:attr).")
    parser_sign.add_argument("--verifier", required=True, help="Signature verifier (module:attr).")
    parser_sign.add_argument("--initiate", action="store_true", help="Stage the payload and finalize the session.")
    parser_sign.add_argument("--payload-hex", type=str, default=None)
    parser_sign.add_argument("--payload-file", type=str, default=None)
    parser_sign.add_argument("--t", type=int, default=None)
    parser_sign.add_argument("--n", type=int, default=None, help="Number of signers.")
    parser_sign.add_argument("--signers", type=int, nargs="+", default=None, help="Signer party IDs.")

    return parser


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings or default_settings

    if not args.command:
        parser.print_help()
        return 2

    setup_logging(settings)

    try:
        if args.command == "serve":
            return _serve(args, settings)
        if args.command == "initiate-keygen":
            return asyncio.run(_initiate_keygen(args, settings))
        if args.command == "keygen":
            return asyncio.run(_run_keygen(args, settings))
        if args.command == "sign":
            return asyncio.run(_run_sign(args, settings))
    except RelayError as e:
        logger.error(f"{args.command} failed ({e.code}): {e}")
        return 1
    except httpx.HTTPError as e:
        logger.error(f"{args.command} failed, request to the coordinator did not complete: {e!r}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
