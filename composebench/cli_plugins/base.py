import argparse

from composebench.lib.utils_lib import setup_logging

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class SubcommandPlugin:
    """Base class for CLI subcommand plugins."""

    def get_name(self):
        raise NotImplementedError

    def get_parser(self, subparsers):
        """Register subcommand with argparse subparsers."""
        raise NotImplementedError

    def get_epilog(self):
        """Return examples or help text for this subcommand. Default is empty."""
        return ""

    def get_order(self):
        """Return the display order for this plugin. Lower numbers appear first. Default is 0."""
        return 0

    def run(self, args):
        """Run the subcommand logic."""
        raise NotImplementedError


def add_config_argument(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--config",
        default="bench.yml",
        help="Path to the benchmark configuration file (default: bench.yml)",
    )


def add_logging_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="INFO", help="Level of messages to display")
    parser.add_argument("--log-file", help="Also write log messages to this file")


def configure_logging(args):
    setup_logging(getattr(args, "log_level", None) or "INFO", getattr(args, "log_file", None))
