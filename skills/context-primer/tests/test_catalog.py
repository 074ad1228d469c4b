import copy
import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from primer import CatalogError, OutputFormat, load_catalog, parse_catalog
from primer.catalog import DEFAULT_CATALOG_PATH

MINIMAL = {
    "version": "1.0.0",
    "sections": [
        {
            "id": "intro",
            "category": "foundation",
            "formats": {"markdown": {"template": "Intro"}},
        }
    ],
}


def with_sections(*sections) -> dict:
    document = copy.deepcopy(MINIMAL)
    document["sections"] = list(sections)
    return document


class TestBundledCatalog(unittest.TestCase):
    def test_bundled_catalog_loads(self) -> None:
        catalog = load_catalog()
        ids = [section.id for section in catalog.sections]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertIn("project-identity", ids)
        self.assertTrue(catalog.section("project-identity").required)
        self.assertIsNotNone(catalog.selection_strategy)
        self.assertEqual(catalog.selection_strategy.algorithm, "value-optimized")
        self.assertEqual(catalog.metadata.name, "default-primer")
        self.assertIn("mcp", [cap.id for cap in catalog.capabilities])

    def test_every_section_has_all_formats(self) -> None:
        for section in load_catalog().sections:
            for fmt in OutputFormat:
                self.assertIsNotNone(section.formats.get(fmt), f"{section.id} lacks {fmt.value}")

    def test_default_path_and_explicit_path_agree(self) -> None:
        self.assertEqual(load_catalog(DEFAULT_CATALOG_PATH), load_catalog())

    def test_to_json_round_trips(self) -> None:
        catalog = load_catalog()
        self.assertEqual(parse_catalog(json.loads(catalog.to_json())), catalog)


class TestCatalogParsing(unittest.TestCase):
    def test_section_defaults(self) -> None:
        section = parse_catalog(MINIMAL).sections[0]
        self.assertEqual(section.priority, 50)
        self.assertEqual(section.tokens, 30)
        self.assertFalse(section.is_dynamic)
        self.assertEqual(section.value.base, 50)
        self.assertEqual(section.value.safety, 0)
        self.assertFalse(section.required)
        self.assertEqual(section.formats.markdown.separator, "\n")
        self.assertIsNone(section.formats.compact)

    def test_dynamic_section_and_filters(self) -> None:
        document = with_sections(
            {
                "id": "locks",
                "category": "safety",
                "tokens": "dynamic",
                "data": {"source": "cache.constraints.by_lock_level", "filter": ["frozen"]},
                "value": {
                    "safety": 90,
                    "modifiers": [{"condition": "constraints.frozenCount > 0", "set": 100}],
                },
            },
            {
                "id": "domains",
                "category": "structure",
                "tokens": "dynamic",
                "data": {"source": "cache.domains", "filter": {"name": ["api", "db"]}},
            },
        )
        locks, domains = parse_catalog(document).sections
        self.assertTrue(locks.is_dynamic)
        self.assertEqual(locks.data.include, ("frozen",))
        self.assertEqual(locks.data.sort_order, "desc")
        self.assertEqual(locks.data.empty_behavior, "exclude")
        modifier = locks.value.modifiers[0]
        self.assertEqual(modifier.set_value, 100)
        self.assertEqual(modifier.dimension, "all")
        self.assertEqual(domains.data.match, (("name", ("api", "db")),))

    def test_missing_version(self) -> None:
        document = copy.deepcopy(MINIMAL)
        del document["version"]
        with self.assertRaises(CatalogError):
            parse_catalog(document)

    def test_bad_token_value(self) -> None:
        document = with_sections({"id": "a", "category": "c", "tokens": "lots"})
        with self.assertRaises(CatalogError) as ctx:
            parse_catalog(document)
        self.assertIn("sections/0/tokens", str(ctx.exception))

    def test_bad_empty_behavior(self) -> None:
        document = with_sections(
            {"id": "a", "category": "c", "data": {"source": "cache.domains", "empty_behavior": "panic"}}
        )
        with self.assertRaises(CatalogError):
            parse_catalog(document)

    def test_duplicate_ids(self) -> None:
        document = with_sections({"id": "a", "category": "c"}, {"id": "a", "category": "c"})
        with self.assertRaisesRegex(CatalogError, "Duplicate section id: a"):
            parse_catalog(document)

    def test_unknown_dependency(self) -> None:
        document = with_sections({"id": "a", "category": "c", "depends_on": ["ghost"]})
        with self.assertRaisesRegex(CatalogError, "unknown section: ghost"):
            parse_catalog(document)

    def test_dependency_cycle(self) -> None:
        document = with_sections(
            {"id": "a", "category": "c", "depends_on": ["b"]},
            {"id": "b", "category": "c", "depends_on": ["c"]},
            {"id": "c", "category": "c", "depends_on": ["a"]},
        )
        with self.assertRaisesRegex(CatalogError, "Dependency cycle: a -> b -> c -> a"):
            parse_catalog(document)

    def test_self_dependency(self) -> None:
        document = with_sections({"id": "a", "category": "c", "depends_on": ["a"]})
        with self.assertRaisesRegex(CatalogError, "Dependency cycle"):
            parse_catalog(document)

    def test_shared_dependency_is_not_a_cycle(self) -> None:
        document = with_sections(
            {"id": "base", "category": "c"},
            {"id": "left", "category": "c", "depends_on": ["base"]},
            {"id": "right", "category": "c", "depends_on": ["base", "left"]},
        )
        self.assertEqual(len(parse_catalog(document).sections), 3)


class TestCatalogFiles(unittest.TestCase):
    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(CatalogError):
                load_catalog(Path(tmp) / "missing.json")

    def test_malformed_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(CatalogError, "Malformed catalog"):
                load_catalog(path)

    def test_non_object_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.json"
            path.write_text("[]", encoding="utf-8")
            with self.assertRaises(CatalogError):
                load_catalog(path)

    def test_custom_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.json"
            path.write_text(json.dumps(MINIMAL), encoding="utf-8")
            catalog = load_catalog(str(path))
            self.assertEqual([section.id for section in catalog.sections], ["intro"])


if __name__ == "__main__":
    unittest.main()
