# composebench/runners/unittests/test_builder.py
import os
import tempfile
import time
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from composebench.lib.errors import ConfigurationError, HookError, TestRunFailed
from composebench.metrics.base import CollectorRegistry
from composebench.runners.builder import RunOptions, build_test_runs, run_tests, tool_names
from composebench.runners.test_run import RunResult, RunStatus, TestRun
from composebench.schema.config import parse_config

NOW = datetime(2025, 1, 2, 3, 4, 5)


def make_config():
    return parse_config(
        {
            "infrastructure": {"kafka": {"compose": "/infra/kafka.yml"}},
            "tools": {
                "conduit": {"compose": "/tools/conduit.yml"},
                "kafka-connect": {"compose": "/tools/kafka-connect.yml"},
            },
            "metrics": {"kafka": {"collector": "kafka", "settings": {"topics": ["a"]}}},
            "tests": [
                {
                    "name": "t1",
                    "duration": "1s",
                    "infrastructure": {"postgres": {"compose": "/infra/postgres.yml"}},
                    "tools": {
                        "custom": {"compose": "/tools/custom.yml"},
                        "conduit": {"compose": "/tools/conduit.override.yml"},
                    },
                    "metrics": {"conduit": {"collector": "conduit"}},
                },
                {"name": "t2", "duration": "2s"},
            ],
        }
    )


class TestBuildTestRuns(unittest.TestCase):
    def setUp(self):
        self.options = RunOptions(out_path=Path("/out"), control_plane=MagicMock(), registry=CollectorRegistry())

    def test_expansion(self):
        runs = build_test_runs(make_config(), self.options, now=NOW)

        self.assertEqual(
            [(r.name, r.tool) for r in runs],
            [
                ("t1", "conduit"),
                ("t1", "kafka-connect"),
                ("t1", "custom"),
                ("t2", "conduit"),
                ("t2", "kafka-connect"),
            ],
        )
        paths = [r.out_path for r in runs]
        self.assertEqual(len(set(paths)), len(paths))
        self.assertEqual(paths[0], Path("/out/20250102030405_t1_conduit"))

    def test_merge_order(self):
        runs = {(r.name, r.tool): r for r in build_test_runs(make_config(), self.options, now=NOW)}

        t1_conduit = runs[("t1", "conduit")]
        self.assertEqual([s.compose for s in t1_conduit.infrastructure], ["/infra/kafka.yml", "/infra/postgres.yml"])
        self.assertEqual([s.compose for s in t1_conduit.tools], ["/tools/conduit.yml", "/tools/conduit.override.yml"])
        self.assertEqual([m.name for m in t1_conduit.metrics], ["kafka", "conduit"])
        self.assertEqual(t1_conduit.duration, 1.0)

        self.assertEqual([s.compose for s in runs[("t1", "custom")].tools], ["/tools/custom.yml"])
        self.assertEqual([s.compose for s in runs[("t1", "kafka-connect")].tools], ["/tools/kafka-connect.yml"])

        t2 = runs[("t2", "conduit")]
        self.assertEqual([s.compose for s in t2.infrastructure], ["/infra/kafka.yml"])
        self.assertEqual([m.name for m in t2.metrics], ["kafka"])
        self.assertEqual(t2.duration, 2.0)

    def test_tool_names(self):
        config = make_config()
        self.assertEqual(tool_names(config, config.tests[0]), ["conduit", "kafka-connect", "custom"])
        self.assertEqual(tool_names(config, config.tests[1]), ["conduit", "kafka-connect"])

    def test_shared_dependencies(self):
        runs = build_test_runs(make_config(), self.options, now=NOW)
        for run in runs:
            self.assertIs(run.control_plane, self.options.control_plane)
            self.assertIs(run.registry, self.options.registry)

    def test_defaults(self):
        runs = build_test_runs(make_config(), RunOptions(out_path="/out"), now=NOW)
        self.assertEqual(runs[0].registry.get_types(), ["conduit", "docker", "kafka", "prometheus"])
        self.assertIsNotNone(runs[0].control_plane)

    def test_filter_tests(self):
        self.options.filter_tests = ["t2"]
        runs = build_test_runs(make_config(), self.options, now=NOW)
        self.assertEqual({r.name for r in runs}, {"t2"})
        self.assertEqual(len(runs), 2)

    def test_unknown_filter(self):
        self.options.filter_tests = ["t3"]
        with self.assertRaisesRegex(ConfigurationError, "unknown test"):
            build_test_runs(make_config(), self.options, now=NOW)

    def test_no_tools(self):
        config = parse_config({"tests": [{"name": "t"}]})
        self.assertEqual(build_test_runs(config, self.options, now=NOW), [])


class TestRunTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.out_path = os.path.join(self.temp_dir.name, "results", "nested")
        self.options = RunOptions(out_path=self.out_path, control_plane=MagicMock(), registry=CollectorRegistry())

    def tearDown(self):
        self.temp_dir.cleanup()

    @staticmethod
    def _result(run, status=RunStatus.COMPLETED, error=None):
        now = time.time()
        return RunResult(run.name, run.tool, run.out_path, status, now, now, error=error)

    def test_runs_sequentially(self):
        executed = []

        def execute(run, ctx):
            executed.append((run.name, run.tool))
            return self._result(run)

        with patch.object(TestRun, "execute", autospec=True, side_effect=execute):
            results = run_tests(make_config(), self.options)

        self.assertTrue(os.path.isdir(self.out_path))
        self.assertEqual(len(results), 5)
        self.assertEqual(executed[0], ("t1", "conduit"))
        self.assertTrue(all(r.succeeded for r in results))

    def test_stops_at_first_failure(self):
        executed = []
        cause = HookError("pre-test", "seed", 1)

        def execute(run, ctx):
            executed.append(run.tool)
            if len(executed) == 2:
                return self._result(run, RunStatus.FAILED, cause)
            return self._result(run)

        with patch.object(TestRun, "execute", autospec=True, side_effect=execute):
            with self.assertRaises(TestRunFailed) as cm:
                run_tests(make_config(), self.options)

        self.assertEqual(executed, ["conduit", "kafka-connect"])
        self.assertEqual(cm.exception.index, 1)
        self.assertEqual(cm.exception.tool, "kafka-connect")
        self.assertIs(cm.exception.cause, cause)
        self.assertIn("failed to run test 1 (kafka-connect)", str(cm.exception))

    def test_empty_config(self):
        self.assertEqual(run_tests(parse_config({}), self.options), [])
        self.assertTrue(os.path.isdir(self.out_path))


if __name__ == "__main__":
    unittest.main()
