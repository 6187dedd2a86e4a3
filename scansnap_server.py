#!/usr/bin/env python3
"""
scansnap_server.py - Serve a document scanner over HTTP.

GET /scan.pdf scans every sheet in the feeder (duplex) and returns one A4 PDF.

Usage:
    python scansnap_server.py
    python scansnap_server.py --listen 127.0.0.1:8080 --log-level debug
    python scansnap_server.py --version
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path when running as script
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent))

from scansnap import __version__
from scansnap.config import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_LISTEN,
    DEFAULT_LOG_LEVEL,
    PDF_DPI,
    SCAN_DPI,
    PipelineSettings,
    ServerSettings,
    parse_listen,
)
from scansnap.errors import StartupError
from scansnap.server import create_app

logger = logging.getLogger("scansnap")

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


def parse_log_level(name: str) -> int:
    """Map a level name to a logging level."""
    try:
        return LOG_LEVELS[name.strip().lower()]
    except KeyError:
        raise StartupError(f"Not a valid log level: {name!r}")


def setup_logging(level: int = logging.INFO):
    """Configure logging."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Network front-end for a document scanner.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scansnap_server.py
  python scansnap_server.py --listen 127.0.0.1:8080
  curl -o scan.pdf http://localhost:3000/scan.pdf

Each request scans every sheet in the feeder at the scan DPI, reduces the
pages to the PDF DPI and returns them as one A4 PDF.
"""
    )

    parser.add_argument(
        "--listen",
        default=DEFAULT_LISTEN,
        help=f"Port/IP to listen on (default: {DEFAULT_LISTEN})"
    )

    parser.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL,
        help="Log level: debug, info, warn, error, fatal (default: info)"
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit"
    )

    parser.add_argument(
        "-q", "--quality",
        type=int,
        default=DEFAULT_JPEG_QUALITY,
        help=f"JPEG quality 0-100 (default: {DEFAULT_JPEG_QUALITY})"
    )

    parser.add_argument(
        "--scan-dpi",
        type=int,
        default=SCAN_DPI,
        help=f"Acquisition resolution (default: {SCAN_DPI})"
    )

    parser.add_argument(
        "--pdf-dpi",
        type=int,
        default=PDF_DPI,
        help=f"Output resolution (default: {PDF_DPI})"
    )

    parser.add_argument(
        "-g", "--grayscale",
        action="store_true",
        help="Store pages without meaningful color as grayscale JPEG"
    )

    parser.add_argument(
        "--busy-timeout",
        type=float,
        default=0.0,
        help="Seconds a request waits for a busy scanner (default: 0, reject)"
    )

    return parser.parse_args(argv)


def build_settings(args):
    """Validate arguments into pipeline and server settings."""
    server_settings = ServerSettings(
        listen=args.listen,
        log_level=args.log_level,
        busy_timeout=max(0.0, args.busy_timeout)
    )
    settings = PipelineSettings(
        scan_dpi=args.scan_dpi,
        pdf_dpi=args.pdf_dpi,
        jpeg_quality=args.quality,
        detect_grayscale=args.grayscale
    ).validate()
    return settings, server_settings


def main(argv=None):
    args = parse_args(argv)

    if args.version:
        print(f"scansnap-server {__version__}")
        sys.exit(0)

    try:
        setup_logging(parse_log_level(args.log_level))
        settings, server_settings = build_settings(args)
        host, port = parse_listen(server_settings.listen)
    except StartupError as e:
        setup_logging()
        logger.critical(f"Unable to start: {e}")
        sys.exit(1)

    app = create_app(settings=settings, server_settings=server_settings)
    logger.info(
        f"Listening on {host}:{port} | scan {settings.scan_dpi} DPI -> "
        f"PDF {settings.pdf_dpi} DPI | q={settings.jpeg_quality}"
    )
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
