#!/usr/bin/env python3
"""
Immutable Ratings Command Line Interface.

Provides commands for running and inspecting Immutable Ratings:
    - serve: Start the API server
    - preview: Derive the identity of an origin
    - price: Compute the payment for a rating amount
    - info: Display version and configuration

Usage:
    immutable-ratings serve [--host HOST] [--port PORT] [--debug] [--production]
    immutable-ratings preview ORIGIN
    immutable-ratings price AMOUNT [--rating-price PRICE]
    immutable-ratings info
    immutable-ratings --version
"""

import argparse
import os
import sys

from immutable_ratings import RATING_UNIT, VERSION


def cmd_serve(args):
    """Start the Immutable Ratings API server."""
    from dotenv import load_dotenv

    from monitoring import configure_logging

    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    host = args.host or os.getenv("HOST", "127.0.0.1")
    port = args.port or int(os.getenv("PORT", 5000))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    print(f"Starting Immutable Ratings API server on {host}:{port}")

    if args.production:
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install immutable-ratings[production]")
            return 1

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Gunicorn wrapper serving the Flask app with options from a dict."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        from api import create_app

        # Ledger state lives in process memory, so one worker serves it; threads add concurrency
        options = {
            "bind": f"{host}:{port}",
            "workers": 1,
            "threads": args.threads or int(os.getenv("THREADS", 4)),
            "worker_class": "gthread",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        StandaloneApplication(create_app(), options).run()
    else:
        from api import run_server

        run_server(host=host, port=port, debug=debug)
    return 0


def cmd_preview(args):
    """Print the identity derived from an origin."""
    from identity_mapping import derive_identity
    from ratings_exceptions import EmptyOrigin

    try:
        identity = derive_identity(args.origin)
    except EmptyOrigin as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(identity)
    return 0


def cmd_price(args):
    """Print the payment for a rating amount."""
    from deployment import USDC_DECIMALS, config_from_env, format_units, parse_ether, parse_usdc
    from ratings_exceptions import ConfigurationError

    try:
        amount = parse_ether(args.amount)
        if args.rating_price is not None:
            rating_price = parse_usdc(args.rating_price)
        else:
            rating_price = config_from_env().rating_price
    except (ValueError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if amount <= 0 or amount % RATING_UNIT != 0:
        print("Error: amount must be a positive whole number of ratings", file=sys.stderr)
        return 1

    payment = amount * rating_price // RATING_UNIT
    print(f"{args.amount} ratings cost {format_units(payment, USDC_DECIMALS)} ({payment} base units)")
    return 0


def cmd_info(args):
    """Display system information."""
    import platform

    from deployment import KNOWN_DEPLOYMENTS, USDC_DECIMALS, config_from_env, format_units
    from ratings_exceptions import ConfigurationError

    print("Immutable Ratings System Information")
    print("=" * 40)
    print(f"Version: {VERSION}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    try:
        config = config_from_env()
    except ConfigurationError as e:
        print(f"  Error: {e.message}")
        return 1

    print(f"  Chain: {config.name} ({config.chain_id})")
    print(f"  Receiver: {config.receiver}")
    print(f"  Payment token: {config.payment_token}")
    print(f"  Swap router: {config.swap_router}")
    print(f"  Rating price: {format_units(config.rating_price, USDC_DECIMALS)} per rating")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")
    print(f"  RATINGS_REQUIRE_AUTH: {os.getenv('RATINGS_REQUIRE_AUTH', 'true (default)')}")

    deployed = KNOWN_DEPLOYMENTS.get(config.chain_id)
    if deployed:
        print()
        print("Deployments:")
        for name, address in deployed.items():
            print(f"  {name}: {address}")

    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="immutable-ratings",
        description="Immutable Ratings - pay-to-rate thumbs up / thumbs down ledger",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument("--production", action="store_true", help="Use gunicorn for production")
    serve_parser.add_argument("--threads", type=int, help="Worker threads (production mode)")

    preview_parser = subparsers.add_parser("preview", help="Derive the identity of an origin")
    preview_parser.add_argument("origin", help="Origin string, e.g. https://www.ratings.wtf")

    price_parser = subparsers.add_parser("price", help="Compute the payment for a rating amount")
    price_parser.add_argument("amount", help="Number of ratings, e.g. 1000")
    price_parser.add_argument(
        "--rating-price", help="Price per rating in USDC (default: configured network price)"
    )

    subparsers.add_parser("info", help="Display version and configuration")

    args = parser.parse_args(argv)

    commands = {
        "serve": cmd_serve,
        "preview": cmd_preview,
        "price": cmd_price,
        "info": cmd_info,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1
    return command(args)


if __name__ == "__main__":
    sys.exit(main())
