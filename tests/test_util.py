import io
import json
import logging
import tempfile
import unittest
from pathlib import Path


class TestJsonlLogging(unittest.TestCase):
    def test_correlation_fields_are_emitted(self) -> None:
        from tuicanvas.util.obslog import JsonlFormatter

        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonlFormatter(component="test"))
        logger = logging.getLogger("tuicanvas.test.obslog")
        logger.propagate = False
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("canvas resolved", extra={"instance_id": "calendar-1", "pane_id": "%3", "kind": "calendar"})
        finally:
            logger.removeHandler(handler)

        doc = json.loads(stream.getvalue().strip())
        self.assertEqual(doc["msg"], "canvas resolved")
        self.assertEqual(doc["component"], "test")
        self.assertEqual(doc["instance_id"], "calendar-1")
        self.assertEqual(doc["pane_id"], "%3")
        self.assertNotIn("scope_key", doc)


class TestFileLock(unittest.TestCase):
    def test_non_blocking_lock_reports_contention(self) -> None:
        from tuicanvas.util.file_lock import LockUnavailableError, locked

        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "tui-canvas-abc.lock"
            with locked(p):
                with self.assertRaises(LockUnavailableError):
                    with locked(p, blocking=False):
                        pass
            with locked(p, blocking=False):
                pass


class TestCoerce(unittest.TestCase):
    def test_loose_values(self) -> None:
        from tuicanvas.util.conv import coerce_bool, coerce_float, coerce_int

        self.assertFalse(coerce_bool("false", default=True))
        self.assertTrue(coerce_bool("yes"))
        self.assertTrue(coerce_bool("maybe", default=True))
        self.assertEqual(coerce_float("nan", default=1.5), 1.5)
        self.assertEqual(coerce_int("7.9", default=0), 7)
        self.assertEqual(coerce_int(None, default=3), 3)


if __name__ == "__main__":
    unittest.main()
