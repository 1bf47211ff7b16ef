"""Command line entry point for natstop."""

import argparse
import logging
import ssl
import sys
from collections.abc import Sequence

from textual.logging import TextualHandler

from natstop.app import NatsTopApp
from natstop.errors import ConfigError, UnknownSortKeyError
from natstop.models import DashboardConfig
from natstop.monitor import MetricsEndpoint, MetricsSource
from natstop.sorting import resolve_sort_key, sort_tokens

__version__ = "0.2.0"

logger = logging.getLogger(__name__)

USAGE = (
    "natstop [-s server] [-m http_port] [-ms https_port] [-n num_connections] "
    "[-d delay_secs] [-sort by]\n"
    "               [-cert FILE] [-key FILE] [-cacert FILE] [-k]"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="natstop",
        usage=USAGE,
        description="top-like view of a NATS server's connections.",
        allow_abbrev=False,
    )
    parser.add_argument("-s", dest="host", default="127.0.0.1", help="The NATS server host.")
    parser.add_argument(
        "-m", dest="port", type=int, default=8222, help="The NATS server monitoring port."
    )
    parser.add_argument(
        "-ms", dest="https_port", type=int, default=0,
        help="The NATS server secure monitoring port.",
    )
    parser.add_argument(
        "-n", dest="conns", type=int, default=1024,
        help="Maximum number of connections to poll.",
    )
    parser.add_argument(
        "-d", dest="delay", type=float, default=1.0, help="Refresh interval in seconds."
    )
    parser.add_argument(
        "-sort", dest="sort_by", default="cid",
        help=f"Value for which to sort by the connections: {{{'|'.join(sort_tokens())}}}.",
    )
    parser.add_argument("-cert", dest="cert", default="", help="Client cert for a TLS server.")
    parser.add_argument("-key", dest="key", default="", help="Client private key for a TLS server.")
    parser.add_argument("-cacert", dest="cacert", default="", help="Root CA cert.")
    parser.add_argument(
        "-k", dest="skip_verify", action="store_true", help="Skip verifying server certificate."
    )
    parser.add_argument(
        "-v", dest="show_version", action="store_true", help="Show natstop version."
    )
    parser.add_argument(
        "--stale-after", type=int, default=3,
        help="Failed polls in a row before the display is marked stale (0 disables).",
    )
    parser.add_argument("--log-file", default="", help="Also write logs to this file.")
    return parser


def build_ssl_context(args: argparse.Namespace) -> ssl.SSLContext:
    """Client TLS context from the cert, key, CA and skip-verify flags."""
    try:
        context = ssl.create_default_context(cafile=args.cacert or None)
        if args.cert and args.key:
            context.load_cert_chain(args.cert, args.key)
    except (OSError, ssl.SSLError) as e:
        raise ConfigError(f"Error: {e}") from e
    if args.skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def build_endpoint(args: argparse.Namespace) -> MetricsEndpoint:
    """
    Monitoring endpoint for the parsed arguments.

    The secure port is used when set, otherwise the plain HTTP one.

    Raises:
        ConfigError: if the host or both ports are missing, or the TLS
            material cannot be loaded.
    """
    if not args.host:
        raise ConfigError("Please specify the monitoring endpoint for NATS.")
    if args.port == 0 and args.https_port == 0:
        raise ConfigError("Please specify the monitoring port for NATS.")

    if args.https_port:
        return MetricsEndpoint(
            uri=f"https://{args.host}:{args.https_port}",
            ssl_context=build_ssl_context(args),
        )
    return MetricsEndpoint(uri=f"http://{args.host}:{args.port}")


def build_config(args: argparse.Namespace) -> DashboardConfig:
    """
    Initial DashboardConfig for the parsed arguments.

    Raises:
        ConfigError: on an unknown sort key or out-of-range numbers.
    """
    try:
        sort_key = resolve_sort_key(args.sort_by)
    except UnknownSortKeyError as e:
        raise ConfigError(str(e)) from e
    if args.conns < 0:
        raise ConfigError("Maximum number of connections must not be negative.")
    if args.delay <= 0:
        raise ConfigError("Refresh interval must be positive.")
    if args.stale_after < 0:
        raise ConfigError("--stale-after must not be negative.")
    return DashboardConfig(
        sample_limit=args.conns,
        refresh_interval=args.delay,
        sort_key=sort_key,
    )


def configure_logging(log_file: str = "") -> None:
    """Send logs to the Textual devtools console, and to a file if asked."""
    handlers: list[logging.Handler] = [TextualHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for natstop. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.show_version:
        print(f"natstop v{__version__}")
        return 0

    try:
        config = build_config(args)
        endpoint = build_endpoint(args)
    except ConfigError as e:
        parser.error(str(e))

    try:
        configure_logging(args.log_file)
    except OSError as e:
        parser.error(f"cannot open log file: {e}")
    logger.debug("Monitoring %s", endpoint.uri)

    app = NatsTopApp(config, MetricsSource(endpoint), stale_after=args.stale_after)
    try:
        app.run()
    except OSError as e:
        print(f"natstop: cannot initialize terminal: {e}", file=sys.stderr)
        return 1
    finally:
        app.stop_polling()
    return app.return_code or 0


if __name__ == "__main__":
    sys.exit(main())
