import os
import sys
import unittest
from typing import List

sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from primer import (
    DimensionWeights,
    GeneratePrimerRequest,
    PrimerSection,
    ProjectState,
    SectionValue,
    score_sections,
    select_sections,
)
from primer.state import NamedCounts


def make_section(section_id: str, tokens: int = 20, **kwargs) -> PrimerSection:
    value = kwargs.pop("value", SectionValue(base=50))
    return PrimerSection(id=section_id, category=kwargs.pop("category", "general"), tokens=tokens, value=value, **kwargs)


def run(sections: List[PrimerSection], state: ProjectState = None, **request_kwargs):
    scored = score_sections(sections, state or ProjectState(), DimensionWeights())
    return select_sections(scored, GeneratePrimerRequest(**request_kwargs))


class TestSelectionPhases(unittest.TestCase):
    def test_required_plus_optional_when_both_fit(self) -> None:
        sections = [
            make_section("core", 20, required=True),
            make_section("extra", 30, value=SectionValue(efficiency=100, accuracy=100, base=100)),
        ]
        result = run(sections, token_budget=50)
        self.assertEqual(result.ids(), ["core", "extra"])
        self.assertEqual(result.tokens_used, 50)
        self.assertEqual(result.excluded_count, 0)

    def test_budget_excludes_optional(self) -> None:
        sections = [
            make_section("core", 20, required=True),
            make_section("extra", 30, value=SectionValue(efficiency=100, accuracy=100, base=100)),
        ]
        for budget in (25, 40):
            result = run(sections, token_budget=budget)
            self.assertEqual(result.ids(), ["core"])
            self.assertGreaterEqual(result.excluded_count, 1)

    def test_required_over_budget_is_silently_omitted(self) -> None:
        result = run([make_section("core", 50, required=True)], token_budget=10)
        self.assertEqual(result.ids(), [])
        self.assertEqual(result.tokens_used, 0)
        self.assertEqual(result.excluded_count, 1)

    def test_zero_budget_selects_nothing(self) -> None:
        sections = [make_section("a", 5), make_section("b", 1, required=True)]
        result = run(sections, token_budget=0)
        self.assertEqual(result.ids(), [])

    def test_required_in_catalog_order_with_reasons(self) -> None:
        sections = [
            make_section("second", 10, required=True),
            make_section("first", 10, required=True),
            make_section("pinned", 10),
        ]
        result = run(sections, token_budget=100, force_include=["pinned"])
        self.assertEqual(result.ids()[:3], ["second", "first", "pinned"])
        labels = [item.reason.label for item in result.selected]
        self.assertEqual(labels, ["required", "required", "forced"])

    def test_conditionally_required_by_domain_count(self) -> None:
        sections = [
            make_section("core", 20, required=True),
            make_section(
                "domains",
                30,
                required_if="domains.count > 3",
                value=SectionValue(efficiency=10, base=10),
            ),
            make_section("rival", 30, value=SectionValue(efficiency=100, accuracy=100, base=100)),
        ]
        many = run(sections, ProjectState(domains=NamedCounts(count=4)), token_budget=50)
        self.assertEqual(many.ids(), ["core", "domains"])
        self.assertEqual(many.selected[1].reason.label, "conditional: domains.count > 3")

        few = run(sections, ProjectState(domains=NamedCounts(count=2)), token_budget=50)
        self.assertEqual(few.ids(), ["core", "rival"])
        self.assertNotIn("domains", few.ids())

    def test_safety_phase_cap_is_computed_once(self) -> None:
        sections = [
            make_section("s1", 20, value=SectionValue(safety=95)),
            make_section("s2", 20, value=SectionValue(safety=90)),
            make_section("s3", 20, value=SectionValue(safety=85)),
        ]
        result = run(sections, token_budget=100)
        labels = {item.id: item.reason.label for item in result.selected}
        # 40% of 100 leaves room for two safety picks; the third arrives by value.
        self.assertEqual(labels["s1"], "safety-critical")
        self.assertEqual(labels["s2"], "safety-critical")
        self.assertEqual(labels["s3"], "value-optimized")
        self.assertEqual(result.ids(), ["s1", "s2", "s3"])

    def test_safety_phase_orders_by_safety_then_score(self) -> None:
        sections = [
            make_section("lower", 10, value=SectionValue(safety=85, base=90)),
            make_section("higher", 10, value=SectionValue(safety=99, base=0)),
            make_section("tie_low", 10, value=SectionValue(safety=85, base=10)),
        ]
        result = run(sections, token_budget=1000)
        self.assertEqual(result.ids(), ["higher", "lower", "tie_low"])

    def test_value_phase_prefers_value_per_token(self) -> None:
        sections = [
            make_section("bulky", 100, value=SectionValue(base=200)),
            make_section("dense", 10, value=SectionValue(base=50)),
            make_section("middle", 40, value=SectionValue(base=100)),
        ]
        result = run(sections, token_budget=60)
        self.assertEqual(result.ids(), ["dense", "middle"])
        self.assertEqual(result.tokens_used, 50)
        self.assertEqual(result.excluded_count, 1)

    def test_value_phase_skips_items_that_do_not_fit(self) -> None:
        sections = [
            make_section("big", 50, value=SectionValue(base=200)),
            make_section("small", 10, value=SectionValue(base=30)),
        ]
        result = run(sections, token_budget=30)
        self.assertEqual(result.ids(), ["small"])


class TestSelectionConstraints(unittest.TestCase):
    def test_conflicts_are_exclusive(self) -> None:
        sections = [
            make_section("cli", 20, required=True, conflicts_with=("tools",)),
            make_section("tools", 10, value=SectionValue(base=200)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids(), ["cli"])
        self.assertEqual(result.excluded_count, 1)

    def test_conflict_declared_by_later_section(self) -> None:
        sections = [
            make_section("b", 10, required=True),
            make_section("a", 10, conflicts_with=("b",), value=SectionValue(base=100)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids(), ["b"])
        self.assertEqual(result.excluded_count, 1)

    def test_dependency_conflicting_with_included_section_fails_chain(self) -> None:
        sections = [
            make_section("core", 10, required=True),
            make_section("legacy", 10, conflicts_with=("core",)),
            make_section("report", 10, depends_on=("legacy",), value=SectionValue(base=100)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids(), ["core"])

    def test_dependency_included_first(self) -> None:
        sections = [
            make_section("protocol", 10, value=SectionValue(base=1)),
            make_section("files", 20, required=True, depends_on=("protocol",)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids(), ["protocol", "files"])
        self.assertEqual(result.selected[0].reason.label, "dependency-of: files")
        self.assertEqual(result.selected[1].reason.label, "required")

    def test_nested_dependencies_depth_first(self) -> None:
        sections = [
            make_section("a", 5, depends_on=("b",)),
            make_section("b", 5, depends_on=("c",)),
            make_section("c", 5),
            make_section("top", 5, required=True, depends_on=("a",)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids()[:4], ["c", "b", "a", "top"])
        self.assertEqual(result.selected[0].reason.label, "dependency-of: b")

    def test_section_skipped_when_dependency_does_not_fit(self) -> None:
        sections = [
            make_section("heavy", 80),
            make_section("needs_heavy", 10, required=True, depends_on=("heavy",)),
            make_section("filler", 10),
        ]
        result = run(sections, token_budget=50)
        self.assertNotIn("needs_heavy", result.ids())
        self.assertNotIn("heavy", result.ids())
        self.assertIn("filler", result.ids())

    def test_section_skipped_when_dependency_ineligible(self) -> None:
        sections = [
            make_section("mcp_only", 10, capabilities=("mcp",)),
            make_section("needs_mcp", 10, depends_on=("mcp_only",)),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(result.ids(), [])
        self.assertEqual(result.excluded_count, 1)

    def test_dependency_cycle_terminates(self) -> None:
        sections = [
            make_section("x", 10, required=True, depends_on=("y",)),
            make_section("y", 10, depends_on=("x",)),
        ]
        result = run(sections, token_budget=100)
        self.assertNotIn("x", result.ids())
        self.assertEqual(result.tokens_used, sum(item.tokens for item in result.selected))


class TestEligibility(unittest.TestCase):
    def test_capability_filters(self) -> None:
        sections = [
            make_section("any_shell", 5, capabilities=("shell", "mcp")),
            make_section("only_mcp", 5, capabilities=("mcp",)),
            make_section("all_rw", 5, capabilities_all=("file-read", "file-write")),
            make_section("all_mcp", 5, capabilities_all=("file-read", "mcp"), capabilities=("shell",)),
            make_section("free", 5),
        ]
        result = run(sections, token_budget=100)
        self.assertEqual(sorted(result.ids()), ["all_rw", "any_shell", "free"])
        self.assertEqual(result.excluded_count, 0)

    def test_category_and_tag_filters(self) -> None:
        sections = [
            make_section("safe_tagged", 5, category="safety", tags=("core",)),
            make_section("safe_untagged", 5, category="safety"),
            make_section("structure", 5, category="structure", tags=("core",)),
        ]
        by_category = run(sections, token_budget=100, categories=["safety"])
        self.assertEqual(sorted(by_category.ids()), ["safe_tagged", "safe_untagged"])
        by_tag = run(sections, token_budget=100, tags=["core"])
        self.assertEqual(sorted(by_tag.ids()), ["safe_tagged", "structure"])
        both = run(sections, token_budget=100, categories=["safety"], tags=["core"])
        self.assertEqual(both.ids(), ["safe_tagged"])

    def test_forced_id_must_still_be_eligible(self) -> None:
        sections = [make_section("mcp_only", 5, capabilities=("mcp",))]
        result = run(sections, token_budget=100, force_include=["mcp_only"])
        self.assertEqual(result.ids(), [])


class TestSelectionProperties(unittest.TestCase):
    def _catalog(self) -> List[PrimerSection]:
        return [
            make_section("core", 25, required=True),
            make_section("protocol", 15, value=SectionValue(safety=85)),
            make_section("locks", 30, depends_on=("protocol",), value=SectionValue(safety=95)),
            make_section("cli", 20, conflicts_with=("tools",), value=SectionValue(efficiency=90)),
            make_section("tools", 20, conflicts_with=("cli",), value=SectionValue(efficiency=95)),
            make_section("layers", 35, value=SectionValue(accuracy=70)),
            make_section("notes", 10),
            make_section("audit", 12, value=SectionValue(safety=82)),
            make_section("shortcut", 8, conflicts_with=("audit",), value=SectionValue(base=90)),
        ]

    def test_properties_hold_across_budgets(self) -> None:
        for budget in range(0, 200, 7):
            result = run(self._catalog(), token_budget=budget)
            ids = result.ids()
            self.assertLessEqual(result.tokens_used, budget)
            self.assertEqual(len(ids), len(set(ids)))
            self.assertFalse("cli" in ids and "tools" in ids)
            self.assertFalse("audit" in ids and "shortcut" in ids)
            if "locks" in ids:
                self.assertIn("protocol", ids)
                self.assertLess(ids.index("protocol"), ids.index("locks"))
            self.assertEqual(result.excluded_count, len(self._catalog()) - len(ids))

    def test_selection_is_idempotent(self) -> None:
        first = run(self._catalog(), token_budget=120)
        second = run(self._catalog(), token_budget=120)
        self.assertEqual(first.ids(), second.ids())
        self.assertEqual(first.tokens_used, second.tokens_used)


if __name__ == "__main__":
    unittest.main()
