# composebench/lib/unittests/test_utils_lib.py
import logging
import os
import tempfile
import unittest

import composebench.lib.utils_lib as utils_lib


class TestParseDuration(unittest.TestCase):
    def test_go_style_strings(self):
        self.assertEqual(utils_lib.parse_duration("30s"), 30.0)
        self.assertEqual(utils_lib.parse_duration("1m30s"), 90.0)
        self.assertEqual(utils_lib.parse_duration("1h5m"), 3900.0)
        self.assertAlmostEqual(utils_lib.parse_duration("500ms"), 0.5)
        self.assertAlmostEqual(utils_lib.parse_duration("1.5s"), 1.5)

    def test_numbers_are_seconds(self):
        self.assertEqual(utils_lib.parse_duration(10), 10.0)
        self.assertEqual(utils_lib.parse_duration(2.5), 2.5)

    def test_zero(self):
        self.assertEqual(utils_lib.parse_duration("0"), 0.0)
        self.assertEqual(utils_lib.parse_duration(0), 0.0)

    def test_invalid(self):
        for value in ["", "5", "-1s", "1x", "s", "1s junk", True, None, -3]:
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    utils_lib.parse_duration(value)


class TestFormatDuration(unittest.TestCase):
    def test_format(self):
        self.assertEqual(utils_lib.format_duration(0), "0s")
        self.assertEqual(utils_lib.format_duration(4.9), "4s")
        self.assertEqual(utils_lib.format_duration(95.7), "1m35s")
        self.assertEqual(utils_lib.format_duration(3725), "1h2m5s")

    def test_negative_is_zero(self):
        self.assertEqual(utils_lib.format_duration(-3), "0s")


class TestStepLogger(unittest.TestCase):
    def test_prefixes_fields(self):
        logger = utils_lib.get_step_logger(logging.getLogger("composebench.test"), test="t1", tool="conduit")
        with self.assertLogs("composebench.test", level="INFO") as cm:
            logger.info("Running step")
        self.assertIn("[test=t1 tool=conduit] Running step", cm.output[0])


class TestSetupLogging(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self._handlers = list(root.handlers)
        self._level = root.level

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            if handler not in self._handlers:
                handler.close()
        for handler in self._handlers:
            root.addHandler(handler)
        root.setLevel(self._level)

    def test_file_handler(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, "logs", "bench.log")
            utils_lib.setup_logging("DEBUG", log_file)

            root = logging.getLogger()
            self.assertEqual(root.level, logging.DEBUG)
            self.assertEqual(len(root.handlers), 2)
            self.assertTrue(os.path.isdir(os.path.dirname(log_file)))

            logging.getLogger("composebench.test").debug("hello")
            for handler in root.handlers:
                handler.flush()
            with open(log_file) as f:
                self.assertIn("hello", f.read())

    def test_unknown_level_defaults_to_info(self):
        utils_lib.setup_logging("LOUD")
        self.assertEqual(logging.getLogger().level, logging.INFO)


if __name__ == "__main__":
    unittest.main()
