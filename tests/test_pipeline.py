"""
Test the validate → flatten → layout pipeline and its command line.

Run: python -m pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from nncircuit.__main__ import main
from nncircuit.pipeline.diagram import DiagramLoadError, load_diagram_file
from nncircuit.pipeline.runner import run_pipeline
from tests.diagram_fixtures import (
    PERCEPTRON_CYCLES,
    make_accumulator_flat,
    make_combinational_loop_flat,
    make_cyclic_modules,
    make_latency_diagram,
    make_layer_diagram,
    make_perceptron_flat,
    make_template_diagram,
)


class TestRunPipeline(unittest.TestCase):

    def test_full_run(self):
        result = run_pipeline(make_perceptron_flat())
        self.assertTrue(result.success, result.message)
        self.assertEqual(result.message, "Layout complete")
        self.assertEqual(
            [result.layout[n].cycle for n in result.graph.ids], PERCEPTRON_CYCLES,
        )
        self.assertEqual(len(result.stages), 3)

    def test_validation_failure_stops_early(self):
        data = make_perceptron_flat()
        data[3]["inputs"]["a"] = "nope.out"
        result = run_pipeline(data)
        self.assertFalse(result.success)
        self.assertIsNone(result.graph)
        self.assertIsNone(result.layout)
        self.assertEqual(len(result.validation.diagnostics), 1)
        self.assertIn("Validation failed", result.message)

    def test_resolution_failure(self):
        result = run_pipeline(make_cyclic_modules())
        self.assertFalse(result.success)
        self.assertTrue(result.validation.ok)
        self.assertIn("Cyclic module instantiation: A -> B -> A", result.message)

    def test_layout_failure(self):
        result = run_pipeline(make_combinational_loop_flat())
        self.assertFalse(result.success)
        self.assertIsNotNone(result.graph)
        self.assertIsNone(result.layout)
        self.assertIn("Layout failed", result.message)

    def test_output_offset(self):
        result = run_pipeline(make_perceptron_flat(), output_offset=1)
        self.assertEqual(result.layout["output"].cycle, 5)

    def test_negative_output_offset(self):
        with self.assertRaises(ValueError):
            run_pipeline([{"id": "o", "type": "output"}], output_offset=-1)

    def test_declared_latency(self):
        result = run_pipeline(make_latency_diagram(3))
        self.assertTrue(result.success, result.message)
        self.assertEqual({n: p.cycle for n, p in result.layout.positions.items()},
                         {"x": 0, "m": 3, "o": 4})

    def test_template_diagram(self):
        result = run_pipeline(make_template_diagram())
        self.assertTrue(result.success, result.message)
        self.assertEqual(len(result.graph), 19)
        self.assertEqual(result.layout["result"].cycle, 6)

    def test_stop_after_flatten(self):
        result = run_pipeline(make_layer_diagram(), stop_after="flatten")
        self.assertTrue(result.success)
        self.assertEqual(len(result.graph), 17)
        self.assertIsNone(result.layout)

    def test_unknown_stage(self):
        with self.assertRaises(ValueError):
            run_pipeline([], stop_after="render")


class TestLoader(unittest.TestCase):

    def test_missing_file(self):
        with self.assertRaises(DiagramLoadError):
            load_diagram_file("/nonexistent/diagram.json")

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bad.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(DiagramLoadError) as ctx:
                load_diagram_file(path)
            self.assertIn("invalid JSON", str(ctx.exception))


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _write(self, data) -> str:
        path = Path(self._tmp.name) / "diagram.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    def _run(self, *argv) -> tuple[int, str]:
        out = io.StringIO()
        code = 0
        with redirect_stdout(out):
            try:
                main(list(argv))
            except SystemExit as e:
                code = e.code
        return code, out.getvalue()

    def test_validate_valid(self):
        path = self._write(make_perceptron_flat())
        code, out = self._run("validate", path)
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), [f"Validating: {path}", "VALID"])

    def test_validate_invalid(self):
        data = make_perceptron_flat()
        data[3]["inputs"]["a"] = "nope.out"
        path = self._write(data)
        code, out = self._run("validate", path)
        lines = out.splitlines()
        self.assertEqual(code, 1)
        self.assertEqual(lines[0], f"Validating: {path}")
        self.assertIn("non-existent component 'nope'", lines[1])
        self.assertEqual(lines[-1], "INVALID")

    def test_validate_unreadable(self):
        code, out = self._run("validate", str(Path(self._tmp.name) / "missing.json"))
        self.assertEqual(code, 1)
        self.assertEqual(out.splitlines()[-1], "INVALID")

    def test_flatten(self):
        code, out = self._run("flatten", self._write(make_layer_diagram()))
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(len(data["nodes"]), 17)
        self.assertEqual([r["path"] for r in data["instances"]], ["n1", "n2"])

    def test_layout_with_offset(self):
        path = self._write(make_accumulator_flat())
        code, out = self._run("layout", path, "--output-offset", "2", "-v")
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data["positions"]["out"]["cycle"], 5)
        self.assertEqual(data["feedback_edges"], [["acc", "sum"]])

    def test_flatten_template(self):
        code, out = self._run("flatten", self._write(make_template_diagram()))
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertIn("d3/m2", [n["id"] for n in data["nodes"]])

    def test_layout_failure_exits_nonzero(self):
        code, out = self._run("layout", self._write(make_combinational_loop_flat()))
        self.assertEqual(code, 1)
        self.assertIn("combinational cycle", out)

    def test_flatten_failure_exits_nonzero(self):
        code, out = self._run("flatten", self._write(make_cyclic_modules()))
        self.assertEqual(code, 1)
        self.assertIn("A -> B -> A", out)

    def test_negative_offset_is_usage_error(self):
        code, out = self._run("layout", self._write(make_perceptron_flat()), "--output-offset", "-1")
        self.assertEqual(code, 2)
        self.assertIn("must not be negative", out)

    def test_usage(self):
        code, out = self._run("render", "x.json")
        self.assertEqual(code, 2)
        self.assertIn("Usage:", out)


if __name__ == "__main__":
    unittest.main()
