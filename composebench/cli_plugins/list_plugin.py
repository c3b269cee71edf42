import sys

from .base import SubcommandPlugin, add_config_argument
from composebench.lib.errors import ConfigurationError
from composebench.metrics.base import default_registry
from composebench.runners.builder import tool_names
from composebench.schema.config import load_config


class ListPlugin(SubcommandPlugin):
    """Print the test runs a configuration expands to and the available collector types."""

    def get_name(self):
        return "list"

    def get_order(self):
        return 1

    def get_parser(self, subparsers):
        parser = subparsers.add_parser("list", help="List the tests of a configuration and the collector types")
        add_config_argument(parser)
        parser.set_defaults(_plugin=self)
        return parser

    def get_epilog(self):
        return """
List Commands:
  composebench list                         List tests of ./bench.yml and collector types
  composebench list --config kafka.yml      List tests of kafka.yml"""

    @staticmethod
    def list_runs(config):
        """Return (test, tool) pairs in the order they are run."""
        pairs = []
        for test in config.tests:
            for tool in tool_names(config, test):
                pairs.append((test.name, tool))
        return pairs

    def run(self, args):
        try:
            config = load_config(args.config)
        except ConfigurationError as e:
            print(f"Error: {e}")
            sys.exit(1)

        print(f"Tests in {args.config}:")
        pairs = self.list_runs(config)
        for test, tool in pairs:
            print(f"  - {test} ({tool})")
        if not pairs:
            print("  (none)")

        print("\nCollector types:")
        for type_name in default_registry().get_types():
            print(f"  - {type_name}")
