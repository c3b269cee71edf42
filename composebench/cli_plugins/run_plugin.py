import logging
import signal
import sys
import threading

from .base import SubcommandPlugin, add_config_argument, add_logging_arguments, configure_logging
from composebench.lib.context import RunContext
from composebench.lib.docker_lib import DockerControlPlane
from composebench.lib.errors import BenchError, ConfigurationError
from composebench.metrics.base import default_registry
from composebench.runners.builder import RunOptions, run_tests
from composebench.schema.config import load_config

log = logging.getLogger(__name__)


class RunPlugin(SubcommandPlugin):
    def get_name(self):
        return "run"

    def get_parser(self, subparsers):
        parser = subparsers.add_parser("run", help="Run the benchmarks of a configuration")
        add_config_argument(parser)
        parser.add_argument("--out", default="./results", help="Output directory (default: ./results)")
        parser.add_argument(
            "--tests",
            nargs="+",
            default=[],
            metavar="TEST",
            help="Only run the tests with these names",
        )
        add_logging_arguments(parser)
        parser.set_defaults(_plugin=self)
        return parser

    def get_epilog(self):
        return """
Run Commands:
  composebench run                                   Run all tests of ./bench.yml
  composebench run --config kafka.yml --out out      Write results to ./out
  composebench run --tests kafka-to-kafka            Run a single test"""

    def run(self, args):
        configure_logging(args)

        try:
            config = load_config(args.config)
        except ConfigurationError as e:
            log.error(str(e))
            sys.exit(1)

        control_plane = DockerControlPlane()
        options = RunOptions(
            out_path=args.out,
            filter_tests=list(args.tests or []),
            control_plane=control_plane,
            registry=default_registry(),
        )

        ctx = RunContext()

        def _stop():
            log.warning("Interrupted, stopping the current test and cleaning up")
            ctx.cancel()

        def _interrupt(signum, frame):
            # the main thread may hold a context lock when the signal lands
            threading.Thread(target=_stop, name="interrupt", daemon=True).start()

        previous = signal.signal(signal.SIGINT, _interrupt)
        try:
            results = run_tests(config, options, ctx)
        except BenchError as e:
            log.error(str(e))
            sys.exit(1)
        finally:
            signal.signal(signal.SIGINT, previous)
            control_plane.close()

        for result in results:
            log.info(f"{result.test} ({result.tool}): {result.status.value}, results in {result.output_dir}")
        return results
