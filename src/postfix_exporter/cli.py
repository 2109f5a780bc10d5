import argparse
import logging
import os
import shutil
import sys
from typing import List, Optional

import attrs

from postfix_exporter import __version__
from postfix_exporter.collector import Collector
from postfix_exporter.config import ExporterConfiguration
from postfix_exporter.exceptions import StateWriteFailed
from postfix_exporter.gauges import master_process
from postfix_exporter.logging_conf import setup_logging
from postfix_exporter.server import serve

logger = logging.getLogger(__name__)

# Command line option -> configuration field
OPTION_FIELDS = {
    "log": "log_path",
    "queue_dir": "queue_dir",
    "state_file": "state_file",
    "log_lines": "log_lines",
    "prefix": "metrics_prefix",
    "listen_address": "listen_address",
    "listen_port": "listen_port",
    "log_level": "log_level",
}


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="postfix-exporter", description="Postfix Prometheus exporter")
    ap.add_argument("--config", "-c", type=str, default=None, help="Path to configuration .toml file")
    ap.add_argument("--log", type=str, default=None, help="Path to Postfix log file")
    ap.add_argument("--queue-dir", type=str, default=None, help="Path to Postfix queue directory")
    ap.add_argument("--state-file", type=str, default=None, help="State file for persistent counters")
    ap.add_argument("--log-lines", type=int, default=None, help="Number of log lines to parse on first run")
    ap.add_argument("--prefix", type=str, default=None, help="Metrics prefix")
    ap.add_argument("--log-level", type=str, default=None, help="Logging level (debug, info, warning, error)")
    ap.add_argument("--log-format", type=str, default=None, choices=["text", "json"], help="Logging format")

    sp = ap.add_subparsers(dest="cmd")
    p_collect = sp.add_parser("collect", help="Collect and output Prometheus metrics (default)")
    p_collect.add_argument("--timestamp", action="store_true", help="Add a generation timestamp comment")
    sp.add_parser("test", help="Test configuration and Postfix accessibility")
    sp.add_parser("version", help="Show exporter version")
    p_serve = sp.add_parser("serve", help="Serve metrics over HTTP")
    p_serve.add_argument("--listen-address", type=str, default=None)
    p_serve.add_argument("--listen-port", type=int, default=None)

    args = ap.parse_args(argv)
    if args.cmd is None:
        args.cmd = "collect"
        args.timestamp = False
    return args


def build_configuration(args: argparse.Namespace) -> ExporterConfiguration:
    if args.config:
        config = ExporterConfiguration.load_toml(args.config)
    else:
        config = ExporterConfiguration()
    config = config.update_from_env()
    overrides = {
        field: getattr(args, option)
        for option, field in OPTION_FIELDS.items()
        if getattr(args, option, None) is not None
    }
    return attrs.evolve(config, **overrides)


def check_configuration(config: ExporterConfiguration) -> int:
    """Check that the exporter can reach everything it collects from."""
    errors = 0

    running, _ = master_process()
    if running:
        logger.info("SUCCESS: Postfix master process is running")
    else:
        logger.warning("WARNING: Postfix master process is not running")
        errors += 1

    if config.queue_dir.is_dir():
        logger.info(f"SUCCESS: Queue directory found: {config.queue_dir}")
    else:
        logger.error(f"ERROR: Queue directory not found: {config.queue_dir}")
        errors += 1

    if config.log_path.is_file() and os.access(config.log_path, os.R_OK):
        logger.info(f"SUCCESS: Log file readable: {config.log_path}")
    else:
        logger.warning(f"WARNING: Cannot read log file: {config.log_path}")
        errors += 1

    if shutil.which("postconf"):
        logger.info("SUCCESS: postconf is available")
    else:
        logger.warning("WARNING: postconf not found (version info will not be available)")

    if errors:
        logger.warning(f"Configuration test completed with {errors} errors/warnings")
        return 1
    logger.info("Configuration test completed successfully")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    config = build_configuration(args)
    setup_logging(level=config.log_level, fmt=args.log_format)

    if args.cmd == "version":
        print(f"Postfix Exporter v{__version__}")
        return 0
    if args.cmd == "test":
        return check_configuration(config)

    collector = Collector(config)
    if args.cmd == "serve":
        serve(collector)
        return 0

    try:
        sys.stdout.write(collector.collect(timestamp=args.timestamp))
    except (StateWriteFailed, OSError):
        logger.exception("Collection failed, no metrics written")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
