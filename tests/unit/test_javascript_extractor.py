"""Unit tests for the JavaScript and TypeScript extractors."""

import textwrap

import pytest

from codebase_vector.infrastructure.extraction.javascript_extractor import (
    JavaScriptExtractor,
    TypeScriptExtractor,
)

JS_SOURCE = textwrap.dedent(
    """\
    import fs from 'fs';
    import { join } from "path";
    const lodash = require('lodash');

    /**
     * Reads a config file.
     */
    export async function loadConfig(dir) {
      const raw = await fs.promises.readFile(join(dir, 'config.json'));
      return JSON.parse(raw);
    }

    const short = () => 1;

    const handler = (req, res) => {
      const body = parse(req.body);
      res.send(body);
    };

    class Repo extends Base {
      // Persists one item.
      async save(item) {
        const row = new Row(item);
        return this.db.insert(row);
      }

      get size() { return 1; }
    }
    """
).encode("utf-8")

TS_SOURCE = textwrap.dedent(
    """\
    import { Db } from './db';

    export function total(items: Item[], tax = 0.2): number {
      const sum = items.reduce((a, b) => a + b.price, 0);
      return sum * (1 + tax);
    }

    export abstract class Store<T> {
      abstract name(): string;

      public async find(id: string, limit?: number): Promise<T | null> {
        const rows = await this.db.query(id);
        return rows[0] ?? null;
      }
    }
    """
).encode("utf-8")

TSX_SOURCE = textwrap.dedent(
    """\
    export function Panel(props: Props): JSX.Element {
      const title = format(props.title);
      return <div className="panel">{title}</div>;
    }
    """
).encode("utf-8")


def by_name(units, name):
    return next(u for u in units if u.name == name)


class TestJavaScriptExtractor:
    """Tests for JavaScript function, arrow and method extraction."""

    @pytest.fixture
    def units(self):
        return JavaScriptExtractor().extract("src/config.js", JS_SOURCE)

    def test_language(self):
        assert JavaScriptExtractor().language == "javascript"

    def test_extracts_functions_arrows_and_methods(self, units):
        assert [u.name for u in units] == ["loadConfig", "handler", "Repo.save"]

    def test_one_line_functions_dropped(self, units):
        names = {u.name for u in units}

        assert "short" not in names
        assert "Repo.size" not in names

    def test_imports_cover_es_modules_and_require(self, units):
        assert all(u.imports == ["fs", "lodash", "path"] for u in units)

    def test_function_metadata(self, units):
        unit = by_name(units, "loadConfig")

        assert unit.node_type == "function"
        assert (unit.start_line, unit.end_line) == (8, 11)
        assert unit.signature == "async function loadConfig(dir)"
        assert unit.doc == "Reads a config file."
        assert unit.callees == ["readFile", "join", "parse"]
        assert unit.param_types == ["dir"]
        assert unit.return_types == []
        assert unit.package_name == ""
        assert unit.receiver == ""

    def test_arrow_function_named_by_variable(self, units):
        unit = by_name(units, "handler")

        assert unit.content.startswith("const handler = (req, res) => {")
        assert (unit.start_line, unit.end_line) == (15, 18)
        assert unit.signature == "const handler = (req, res) =>"
        assert unit.callees == ["parse", "send"]
        assert unit.param_types == ["req", "res"]

    def test_class_method(self, units):
        unit = by_name(units, "Repo.save")

        assert unit.node_type == "method"
        assert (unit.start_line, unit.end_line) == (22, 25)
        assert unit.signature == "async save(item)"
        assert unit.doc == "Persists one item."
        assert unit.callees == ["Row", "insert"]

    def test_content_is_exact_source_span(self, units):
        for unit in units:
            assert JS_SOURCE[unit.start_byte : unit.end_byte].decode("utf-8") == unit.content

    def test_broken_source_still_yields_intact_functions(self):
        source = JS_SOURCE + b"\nfunction broken( {\n"

        units = JavaScriptExtractor().extract("broken.js", source)

        assert "loadConfig" in [u.name for u in units]


class TestTypeScriptExtractor:
    """Tests for type-annotation aware extraction."""

    @pytest.fixture
    def units(self):
        return TypeScriptExtractor().extract("src/store.ts", TS_SOURCE)

    def test_language(self):
        assert TypeScriptExtractor().language == "typescript"

    def test_grammar_follows_extension(self):
        extractor = TypeScriptExtractor()

        assert extractor.grammar_for("a/b.ts") == "typescript"
        assert extractor.grammar_for("a/B.TSX") == "tsx"

    def test_extracts_functions_and_methods(self, units):
        assert [u.name for u in units] == ["total", "Store.find"]

    def test_function_types(self, units):
        unit = by_name(units, "total")

        assert unit.signature == "function total(items: Item[], tax = 0.2): number"
        assert unit.param_types == ["Item[]", "tax"]
        assert unit.return_types == ["number"]
        assert unit.imports == ["./db"]
        assert unit.callees == ["reduce"]

    def test_method_types(self, units):
        unit = by_name(units, "Store.find")

        assert unit.node_type == "method"
        assert unit.param_types == ["string", "number"]
        assert unit.return_types == ["Promise<T | null>"]
        assert unit.callees == ["query"]

    def test_tsx_file(self):
        (unit,) = TypeScriptExtractor().extract("ui/panel.tsx", TSX_SOURCE)

        assert unit.name == "Panel"
        assert unit.return_types == ["JSX.Element"]
        assert unit.callees == ["format"]
