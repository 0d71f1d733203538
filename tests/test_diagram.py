"""Tests for diagram parsing, serialization, the connection grammar,
parameter expressions and module templates."""

from __future__ import annotations

import unittest

from nncircuit.pipeline.diagram import (
    ComponentRef,
    ExpressionError,
    FlatDiagram,
    HierarchicalDiagram,
    InputSpec,
    ModuleInputRef,
    ModuleInstance,
    Primitive,
    diagram_to_dict,
    evaluate,
    expand_definition,
    is_template,
    parse_connection,
    parse_definition,
    parse_diagram,
    qualify,
    substitute,
)
from tests.diagram_fixtures import (
    make_dot_template,
    make_layer_diagram,
    make_perceptron_flat,
    make_template_diagram,
)


class TestConnections(unittest.TestCase):

    def test_component_ref(self):
        self.assertEqual(parse_connection("mul1.out"), ComponentRef("mul1", "out"))
        self.assertEqual(parse_connection("n1/m0.out"), ComponentRef("n1/m0", "out"))
        self.assertEqual(str(ComponentRef("a", "b")), "a.b")

    def test_splits_on_first_dot(self):
        self.assertEqual(parse_connection("a.b.c"), ComponentRef("a", "b.c"))

    def test_module_input_ref(self):
        self.assertEqual(parse_connection("$.x"), ModuleInputRef("x"))
        self.assertEqual(parse_connection("$.x[3]"), ModuleInputRef("x", 3))
        self.assertEqual(str(ModuleInputRef("x", 3)), "$.x[3]")

    def test_malformed(self):
        for text in ("x0", ".out", "x0.", "$.", "$.x[", "$.x[-1]", "$.a-b", "", None, 5):
            self.assertIsNone(parse_connection(text), text)

    def test_qualify(self):
        self.assertEqual(qualify("", "m0"), "m0")
        self.assertEqual(qualify("n1/inner", "m0"), "n1/inner/m0")


class TestParsing(unittest.TestCase):

    def test_flat(self):
        diagram = parse_diagram(make_perceptron_flat())
        self.assertIsInstance(diagram, FlatDiagram)
        self.assertEqual(diagram.kind, "flat")
        self.assertEqual(diagram.components[0], Primitive("x0", "input", "input"))
        self.assertEqual(diagram.components[3].inputs, {"a": "x0.out", "b": "w0.out"})

    def test_hierarchical(self):
        diagram = parse_diagram(make_layer_diagram())
        self.assertIsInstance(diagram, HierarchicalDiagram)
        self.assertEqual(diagram.entry_definition.name, "Layer")
        neuron = diagram.module_definitions["Neuron"]
        self.assertEqual(neuron.inputs, [InputSpec("x", 2), InputSpec("w", 2), InputSpec("bias")])
        self.assertTrue(neuron.input_spec("x").is_bus)
        self.assertFalse(neuron.input_spec("bias").is_bus)
        n1 = diagram.entry_definition.component("n1")
        self.assertIsInstance(n1, ModuleInstance)
        self.assertEqual(n1.type, "module")
        self.assertEqual(n1.label, "Neuron")
        self.assertEqual(n1.inputs["x"], ["x0.out", "x1.out"])

    def test_primitive_definitions(self):
        data = make_layer_diagram()
        data["primitiveDefinitions"] = {
            "mac": {"is_primitive": True, "inputs": [{"name": "a"}], "outputs": [{"name": "out", "size": 2}]},
        }
        mac = parse_diagram(data).primitive_definitions["mac"]
        self.assertEqual(mac.input_names, ["a"])
        self.assertEqual(mac.outputs[0].size, 2)
        self.assertEqual(mac.latency, 1)


class TestExpressions(unittest.TestCase):

    def test_whole_placeholder_is_an_integer(self):
        self.assertEqual(substitute("${N - 1}", {"N": 4}), 3)
        self.assertEqual(substitute("${ N }", {"N": 4}), 4)

    def test_embedded_placeholders_are_text(self):
        self.assertEqual(substitute("m${i}", {"i": 2}), "m2")
        self.assertEqual(substitute("$.x[${i + 1}]", {"i": 2}), "$.x[3]")
        self.assertEqual(substitute("s${i - 1}.out", {"i": 1}), "s0.out")
        self.assertEqual(substitute("plain.out", {}), "plain.out")

    def test_arithmetic(self):
        values = {"N": 7, "i": 2}
        self.assertEqual(evaluate("N // 2", values), 3)
        self.assertEqual(evaluate("N % 4", values), 3)
        self.assertEqual(evaluate("-i + N * (i + 1)", values), 19)
        self.assertEqual(evaluate("(N + 1) / 2", values), 4)
        self.assertEqual(evaluate("floor(N / 2)", values), 3)
        self.assertEqual(evaluate("ceil(N / 2)", values), 4)
        self.assertEqual(evaluate("max(i, N - 10, 0)", values), 2)
        self.assertEqual(evaluate("abs(i - N)", values), 5)

    def test_fraction_result_rejected(self):
        with self.assertRaises(ExpressionError):
            evaluate("N / 2", {"N": 7})

    def test_errors(self):
        for expr in ("M + 1", "N / 0", "N % 0", "N ** 2", "N.real", "True", "'a'",
                     "__import__('os')", "[N]", "N if N else 1", "floor(1, 2)", ""):
            with self.assertRaises(ExpressionError, msg=expr):
                evaluate(expr, {"N": 2})

    def test_unterminated_placeholder(self):
        with self.assertRaises(ExpressionError):
            substitute("m${i", {"i": 0})

    def test_expression_error_is_a_value_error(self):
        self.assertTrue(issubclass(ExpressionError, ValueError))


class TestTemplates(unittest.TestCase):

    def test_is_template(self):
        self.assertTrue(is_template(make_dot_template()))
        self.assertFalse(is_template(make_layer_diagram()["moduleDefinitions"]["Neuron"]))

    def test_expand_with_defaults(self):
        expanded = expand_definition(make_dot_template())
        self.assertNotIn("component_loops", expanded)
        self.assertEqual(expanded["parameters"], {"N": 2})
        self.assertEqual(expanded["inputs"][0], {"name": "x", "size": 2})
        self.assertEqual([c["id"] for c in expanded["components"]], ["s0", "m0", "m1", "s1"])
        self.assertEqual(expanded["outputMappings"], {"y": "s1.out"})

    def test_expand_with_override(self):
        expanded = expand_definition(make_dot_template(), {"N": 4})
        self.assertEqual(len(expanded["components"]), 8)
        self.assertEqual(expanded["components"][4]["inputs"], {"a": "$.x[3]", "b": "$.w[3]"})

    def test_template_not_mutated(self):
        dot = make_dot_template()
        expand_definition(dot, {"N": 3})
        self.assertEqual(dot, make_dot_template())

    def test_numeric_ids_stay_text(self):
        dot = make_dot_template()
        dot["component_loops"][0]["components"][0]["id"] = "${i}"
        ids = [c["id"] for c in expand_definition(dot)["components"]]
        self.assertEqual(ids[1:3], ["0", "1"])

    def test_parse_definition_keeps_template(self):
        dot = parse_definition("Dot", make_dot_template(), {"N": 3})
        self.assertEqual(dot.parameters, {"N": 3})
        self.assertEqual(dot.input_spec("x"), InputSpec("x", 3))
        self.assertIsNotNone(dot.component("m2"))
        self.assertEqual(dot.template, make_dot_template())

    def test_instance_parameters_parsed(self):
        diagram = parse_diagram(make_template_diagram())
        d3 = diagram.entry_definition.component("d3")
        self.assertEqual(d3.parameters, {"N": 3})
        self.assertEqual(diagram.entry_definition.component("d2").parameters, {})


class TestSerialization(unittest.TestCase):

    def test_flat_round_trip(self):
        data = make_perceptron_flat()
        self.assertEqual(diagram_to_dict(parse_diagram(data)), data)

    def test_hierarchical_round_trip(self):
        data = make_layer_diagram()
        self.assertEqual(diagram_to_dict(parse_diagram(data)), data)

    def test_template_round_trip(self):
        data = make_template_diagram()
        self.assertEqual(diagram_to_dict(parse_diagram(data)), data)

    def test_custom_label_kept(self):
        data = make_perceptron_flat()
        data[3]["label"] = "x0 * w0"
        self.assertEqual(diagram_to_dict(parse_diagram(data))[3]["label"], "x0 * w0")


if __name__ == "__main__":
    unittest.main()
