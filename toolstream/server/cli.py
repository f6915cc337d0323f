"""
Command-line interface for the ToolStream server.
"""

import argparse
import logging
import sys

from .. import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolstream-server",
        description="ToolStream Server - stream tool-using model completions over SSE",
    )

    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--tools",
        default=None,
        help="Tool registry to serve, as 'package.module:attribute'",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model name (default: TOOLSTREAM_MODEL or gemini-2.0-flash)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main():
    """Main entry point for the CLI."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from ..config import ClientConfig
    from ..tools import load_registry
    from .app import ToolStreamServer

    client_config = ClientConfig.from_env()
    if args.model:
        client_config.model = args.model
    if not client_config.api_key:
        print("Error: set TOOLSTREAM_API_KEY or GEMINI_API_KEY", file=sys.stderr)
        sys.exit(1)

    try:
        registry = load_registry(args.tools) if args.tools else None
    except (ImportError, AttributeError, TypeError, ValueError) as e:
        print(f"Error: cannot load tools from {args.tools}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                   ToolStream Server v{__version__:<24}║
╠══════════════════════════════════════════════════════════════╣
║  Model: {client_config.model[:53]:<53}║
║  Host: {args.host:<54}║
║  Port: {args.port:<54}║
║  Tools: {(args.tools or "none")[:53]:<53}║
╚══════════════════════════════════════════════════════════════╝

📖 API Documentation: http://{args.host}:{args.port}/docs
🔁 Stream endpoint: POST http://{args.host}:{args.port}/v1/completions/stream

Press Ctrl+C to stop the server.
""")

    try:
        server = ToolStreamServer(
            host=args.host,
            port=args.port,
            registry=registry,
            client_config=client_config,
            debug=args.debug,
            log_level=args.log_level,
        )
        server.run()
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)


if __name__ == "__main__":
    main()
