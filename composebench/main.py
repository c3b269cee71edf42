#!/usr/bin/env python3
import argparse
import sys
import os
import importlib
import pkgutil
import importlib.metadata as metadata
from composebench.cli_plugins.base import SubcommandPlugin

PLUGIN_DIR = os.path.join(os.path.dirname(__file__), "cli_plugins")


def get_version():
    """Return 'composebench: <version>' from the installed metadata or version.txt."""
    version = "unknown"
    try:
        version = metadata.version("composebench")
    except metadata.PackageNotFoundError:
        # running from a checkout
        version_file = os.path.join(os.path.dirname(__file__), "..", "version.txt")
        if os.path.exists(version_file):
            with open(version_file) as f:
                version = f.read().strip()
    return f"composebench: {version}"


def discover_plugins():
    """Discover and instantiate all CLI subcommand plugin classes from the cli_plugins directory.

    Only classes defined directly in a plugin module (not imported into it) are
    instantiated, so a plugin subclassing another one is not registered twice.

    Returns:
        list: Plugin instances, sorted by order then alphabetically by name.
    """
    plugins = []
    for _, name, ispkg in pkgutil.iter_modules([PLUGIN_DIR]):
        if ispkg or name == "base":
            continue
        try:
            mod = importlib.import_module(f"composebench.cli_plugins.{name}")
        except ImportError as e:
            print(f"Warning: Failed to load plugin {name}: {e}", file=sys.stderr)
            continue
        for attr in dir(mod):
            obj = getattr(mod, attr)
            if (
                isinstance(obj, type)
                and issubclass(obj, SubcommandPlugin)
                and obj is not SubcommandPlugin
                and obj.__module__ == mod.__name__
            ):
                plugins.append(obj())

    return sorted(plugins, key=lambda p: (p.get_order(), p.get_name()))


def build_arg_parser(plugins):
    """Build the top-level parser with one subcommand per plugin.

    The epilogs of all plugins are concatenated into the main parser's epilog.
    """
    epilogs = [plugin.get_epilog() for plugin in plugins if plugin.get_epilog().strip()]
    epilog = "\n".join(epilogs) if epilogs else ""

    parser = argparse.ArgumentParser(
        prog="composebench",
        description="Benchmarks of containerized tools with docker compose",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    parser.add_argument("--version", action="version", version=get_version())
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    for plugin in plugins:
        plugin.get_parser(subparsers)
    return parser


def main(plugins=None, argv=None):
    if plugins is None:
        plugins = discover_plugins()
    parser = build_arg_parser(plugins)
    args = parser.parse_args(argv)

    # Dispatch to plugin
    if hasattr(args, "_plugin"):
        return args._plugin.run(args)
    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
