"""
Command line entry point for Print Relay.

    print-relay serve            run the hosted Queue API (Flask dev server)
    print-relay dispatch         run the LAN dispatcher loop
    print-relay enqueue TYPE     submit a job through the HTTP API
    print-relay test-print       print a test ticket directly on the configured device
    print-relay open-drawer      pulse the cash drawer directly
    print-relay check            probe the configured device
    print-relay generate-secret  print a fresh shared secret
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from typing import List, Optional

from print_relay.core.config import load_dispatcher_settings
from print_relay.core.errors import PrintRelayError, Unauthorized
from print_relay.core.jobs import JOB_TYPES
from print_relay.core.logging import configure_logging

logger = logging.getLogger("print_relay.cli")


def _settings(args: argparse.Namespace, validate: bool = True):
    try:
        return load_dispatcher_settings(getattr(args, "config", None), validate=validate)
    except ValueError as e:
        logger.error("Invalid dispatcher config: %s", e)
        sys.exit(2)


def cmd_serve(args: argparse.Namespace) -> int:
    from print_relay import create_app

    app = create_app()
    logger.info("Serving print queue on %s:%d", args.host, args.port)
    app.run(host=args.host, port=args.port, threaded=True)
    return 0


def cmd_dispatch(args: argparse.Namespace) -> int:
    from print_relay.printing.dispatcher import build_dispatcher

    settings = _settings(args)
    if not settings.secret:
        logger.error("PRINTRELAY_SECRET (or 'secret' in the config file) is required")
        return 2
    dispatcher = build_dispatcher(settings)

    if args.once:
        try:
            result = dispatcher.run_once()
        except Unauthorized:
            return 1
        logger.info("Cycle done: printed=%d failed=%d skipped=%d", len(result.printed), len(result.failed), len(result.skipped))
        return 1 if result.error or result.failed else 0

    stop = threading.Event()

    def _stop(signum, _frame):
        logger.info("Received signal %s, finishing current cycle", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)
    try:
        dispatcher.run_forever(stop)
    except Unauthorized:
        return 1
    return 0


def cmd_enqueue(args: argparse.Namespace) -> int:
    from print_relay.printing.client import QueueClient

    # Producers only need the queue URL and secret, not a printer
    settings = _settings(args, validate=False)
    payload = None
    if args.payload:
        try:
            payload = json.loads(args.payload)
        except ValueError as e:
            logger.error("--payload is not valid JSON: %s", e)
            return 2
    client = QueueClient(settings.queue_url, settings.secret, timeout=settings.http_timeout)
    try:
        job_id = client.enqueue(args.type, payload)
    except PrintRelayError as e:
        logger.error("Enqueue failed: %s", e)
        return 1
    print(job_id)
    return 0


def _direct_send(args: argparse.Namespace, which: str) -> int:
    from print_relay.printing.tickets import TicketOptions, encode_drawer_pulse, encode_test_ticket
    from print_relay.printing.transports import build_transport

    settings = _settings(args)
    transport = build_transport(settings)
    options = TicketOptions.from_settings(settings)
    data = encode_test_ticket(options, transport.describe()) if which == "test" else encode_drawer_pulse(options)
    try:
        transport.send(data)
    except PrintRelayError as e:
        logger.error("Send to %s failed: %s", transport.describe(), e)
        return 1
    logger.info("Sent %d bytes to %s", len(data), transport.describe())
    return 0


def cmd_test_print(args: argparse.Namespace) -> int:
    return _direct_send(args, "test")


def cmd_open_drawer(args: argparse.Namespace) -> int:
    return _direct_send(args, "drawer")


def cmd_check(args: argparse.Namespace) -> int:
    from print_relay.printing.transports import build_transport

    transport = build_transport(_settings(args))
    try:
        transport.probe()
    except PrintRelayError as e:
        print(f"{transport.describe()}: unreachable ({e})")
        return 1
    print(f"{transport.describe()}: ok")
    return 0


def cmd_generate_secret(args: argparse.Namespace) -> int:
    from print_relay.web.auth import generate_secret

    print(generate_secret(args.bytes))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="print-relay",
        description="Durable print queue for kitchen tickets and cash drawers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default=None, help="Dispatcher JSON config (default: $PRINTRELAY_CONFIG_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the Queue API")
    p.add_argument("--host", default=os.environ.get("PRINTRELAY_HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.environ.get("PRINTRELAY_PORT", "8000")))
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("dispatch", help="Run the LAN dispatcher")
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.set_defaults(func=cmd_dispatch)

    p = sub.add_parser("enqueue", help="Submit a job to the queue")
    p.add_argument("type", choices=list(JOB_TYPES))
    p.add_argument("--payload", help="Job payload as a JSON object")
    p.set_defaults(func=cmd_enqueue)

    sub.add_parser("test-print", help="Print a test ticket on the configured device").set_defaults(func=cmd_test_print)
    sub.add_parser("open-drawer", help="Pulse the cash drawer").set_defaults(func=cmd_open_drawer)
    sub.add_parser("check", help="Probe the configured device").set_defaults(func=cmd_check)

    p = sub.add_parser("generate-secret", help="Print a new shared secret")
    p.add_argument("--bytes", type=int, default=32)
    p.set_defaults(func=cmd_generate_secret)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.debug else logging.INFO, component=args.command)
    return int(args.func(args) or 0)


if __name__ == "__main__":
    sys.exit(main())
