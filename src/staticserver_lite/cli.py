"""staticserver-lite CLI entry point.

Usage: staticserver-lite [--log-level LEVEL] {serve,control} ...
"""
import argparse
import logging
import sys
import threading


def _add_serve_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "serve",
        help="Serve one folder on an ephemeral loopback port until interrupted.",
    )
    p.add_argument("root", help="Folder to serve.")
    p.add_argument(
        "--host", default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    p.add_argument(
        "--filter", action="append", default=[], metavar="PATH",
        help="Request path to route through interception (repeatable).",
    )
    p.add_argument(
        "--timeout-ms", type=int, default=-1,
        help="Interception timeout in ms; negative keeps the default.",
    )
    p.add_argument(
        "--max-workers", type=int, default=32,
        help="Connection handler threads (default: 32)",
    )


def _add_control_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "control",
        help="Run the command channel that starts and stops servers on request.",
    )
    p.add_argument(
        "--host", default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    p.add_argument(
        "--port", type=int, default=0,
        help="Bind port (default: 0, OS picks one and it is printed)",
    )
    p.add_argument(
        "--max-workers", type=int, default=32,
        help="Connection handler threads per static server (default: 32)",
    )


def _wait_for_interrupt() -> None:
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass


def _run_serve(args: argparse.Namespace) -> int:
    from staticserver_lite.domain.errors import StaticServerError
    from staticserver_lite.server.manager import ServerManager

    log = logging.getLogger("staticserver_lite.cli")
    with ServerManager(host=args.host, max_workers=args.max_workers) as manager:
        manager.set_interception_timeout(args.timeout_ms)
        try:
            info = manager.get_server(args.root)
            if args.filter:
                manager.set_filtered_paths(args.root, args.filter)
        except StaticServerError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1

        if args.filter:
            manager.events.subscribe(
                lambda req: log.info("Filtered request %s%s", req.location.pathname, req.location.search),
                session="cli",
            )
        print(f"Serving {args.root} at {info.base_url}")
        _wait_for_interrupt()
    return 0


def _run_control(args: argparse.Namespace) -> int:
    from staticserver_lite.rpc.control_server import ControlServer
    from staticserver_lite.server.manager import ServerManager

    server = ControlServer(
        ServerManager(host=args.host, max_workers=args.max_workers),
        host=args.host,
        port=args.port,
    )
    host, port = server.start()
    print(f"Control channel on {host}:{port}")
    try:
        _wait_for_interrupt()
    finally:
        server.stop()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="staticserver-lite",
        description="Per-folder static preview servers with live request interception.",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command")

    _add_serve_parser(subparsers)
    _add_control_parser(subparsers)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "serve":
        sys.exit(_run_serve(args))
    if args.command == "control":
        sys.exit(_run_control(args))
