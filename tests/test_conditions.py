import asyncio
import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowrunner.debug import DebugLog
from flowrunner.errors import BrowserUnavailableError, ConfigurationError
from flowrunner.workflow.conditions import ConditionalEvaluator, apply_transforms, compare, parse_number
from flowrunner.workflow.steps import ConditionConfig
from flowrunner.workflow.variables import VariableStore


class FakeDom:
    """Minimal browser capability for condition checks."""

    def __init__(self, texts: dict[str, str]):
        self.texts = texts

    async def element_exists(self, selector: str) -> bool:
        return selector in self.texts

    async def element_text(self, selector: str) -> str:
        return self.texts[selector]


def _config(**fields) -> ConditionConfig:
    return ConditionConfig.model_validate(fields)


class TransformTests(unittest.TestCase):
    def test_strip_currency(self):
        config = _config(conditionType="valueMatches", transformType="stripCurrency")
        self.assertEqual(apply_transforms("$1,234.50", config), "1234.50")
        self.assertEqual(apply_transforms("€ 99", config), "99")

    def test_strip_non_numeric(self):
        config = _config(conditionType="valueMatches", transformType="stripNonNumeric")
        self.assertEqual(apply_transforms("Total: -12.5 units", config), "-12.5")

    def test_remove_chars(self):
        config = _config(conditionType="valueMatches", transformType="removeChars", transformChars="%")
        self.assertEqual(apply_transforms("85%", config), "85")

    def test_regex_replace_with_group_reference(self):
        config = _config(
            conditionType="valueMatches",
            transformType="regexReplace",
            transformPattern=r"(\d+) items",
            transformReplace="$1",
        )
        self.assertEqual(apply_transforms("42 items", config), "42")

    def test_invalid_regex_passes_value_through(self):
        debug = DebugLog()
        config = _config(
            conditionType="valueMatches",
            transformType="regexReplace",
            transformPattern="([unclosed",
            transformReplace="",
        )
        self.assertEqual(apply_transforms("abc", config, debug), "abc")
        self.assertEqual(debug.statistics()["warn"], 1)

    def test_transform_list_runs_in_order(self):
        config = _config(
            conditionType="valueMatches",
            transformType=["removeChars", "stripCurrency"],
            transformChars="USD",
        )
        self.assertEqual(apply_transforms("USD $2,000", config), "2000")


class CompareTests(unittest.TestCase):
    def test_parse_number_reads_leading_float(self):
        self.assertEqual(parse_number("12.5abc"), 12.5)
        self.assertEqual(parse_number("  -3"), -3.0)
        self.assertIsNone(parse_number("abc"))

    def test_contains_is_textual(self):
        self.assertTrue(compare("Order shipped", "shipped", "contains", False))
        self.assertTrue(compare("1234", "23", "contains", True))
        self.assertFalse(compare("Order pending", "shipped", "contains", False))

    def test_numeric_comparisons(self):
        self.assertTrue(compare("1234.50", "1000", "greaterThan", True))
        self.assertTrue(compare("5", "10", "lessThan", True))
        self.assertTrue(compare("85", "85.0", "equals", True))

    def test_string_equality_without_number_parsing(self):
        self.assertFalse(compare("85", "85.0", "equals", False))
        self.assertTrue(compare("ready", "ready", "equals", False))

    def test_unparseable_numbers_compare_false(self):
        self.assertFalse(compare("n/a", "10", "greaterThan", True))
        self.assertFalse(compare("n/a", "10", "lessThan", False))


class ConditionalEvaluatorTests(unittest.TestCase):
    def test_value_matches_with_currency_and_number_parsing(self):
        dom = FakeDom({".price": "$1,234.50"})
        evaluator = ConditionalEvaluator(VariableStore(), dom)
        config = _config(
            conditionType="valueMatches",
            selector=".price",
            expectedValue=1000,
            condition="greaterThan",
            transformType="stripCurrency",
            parseAsNumber=True,
        )

        result = asyncio.run(evaluator.evaluate(config))

        self.assertTrue(result.condition_result)
        self.assertEqual(result.effective_selector, ".price")

    def test_percentage_equals(self):
        dom = FakeDom({"#score": "85%"})
        evaluator = ConditionalEvaluator(VariableStore(), dom)
        config = _config(
            conditionType="valueMatches",
            selector="#score",
            expectedValue="85",
            transformType="removeChars",
            transformChars="%",
            parseAsNumber=True,
        )
        self.assertTrue(asyncio.run(evaluator.evaluate(config)).condition_result)

    def test_element_exists(self):
        evaluator = ConditionalEvaluator(VariableStore(), FakeDom({"#banner": ""}))
        present = asyncio.run(evaluator.evaluate(_config(conditionType="elementExists", selector="#banner")))
        missing = asyncio.run(evaluator.evaluate(_config(conditionType="elementExists", selector="#nope")))
        self.assertTrue(present.condition_result)
        self.assertFalse(missing.condition_result)

    def test_browser_condition_requires_selector_and_browser(self):
        with self.assertRaises(ConfigurationError):
            asyncio.run(
                ConditionalEvaluator(VariableStore(), FakeDom({})).evaluate(
                    _config(conditionType="elementExists")
                )
            )
        with self.assertRaises(BrowserUnavailableError):
            asyncio.run(
                ConditionalEvaluator(VariableStore()).evaluate(
                    _config(conditionType="elementExists", selector="#a")
                )
            )

    def test_variable_exists(self):
        evaluator = ConditionalEvaluator(VariableStore({"set": "x", "empty": ""}))
        self.assertTrue(evaluator.evaluate_variable(_config(conditionType="variableExists", variableName="set")).condition_result)
        self.assertFalse(evaluator.evaluate_variable(_config(conditionType="variableExists", variableName="empty")).condition_result)
        self.assertFalse(evaluator.evaluate_variable(_config(conditionType="variableExists", variableName="nope")).condition_result)

    def test_variable_matches(self):
        evaluator = ConditionalEvaluator(VariableStore({"count": 7, "status": "Shipped"}))
        greater = _config(
            conditionType="variableMatches",
            variableName="count",
            expectedValue="5",
            condition="greaterThan",
            parseAsNumber=True,
        )
        contains = _config(
            conditionType="variableMatches",
            variableName="status",
            expectedValue="hip",
            condition="contains",
        )
        self.assertTrue(evaluator.evaluate_variable(greater).condition_result)
        self.assertTrue(evaluator.evaluate_variable(contains).condition_result)

    def test_variable_condition_requires_name(self):
        with self.assertRaises(ConfigurationError):
            ConditionalEvaluator(VariableStore()).evaluate_variable(_config(conditionType="variableExists"))


if __name__ == "__main__":
    unittest.main()
