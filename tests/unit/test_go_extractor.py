"""Unit tests for GoExtractor."""

import textwrap

import pytest

from codebase_vector.core.errors import ExtractionError
from codebase_vector.infrastructure.extraction.go_extractor import GoExtractor

SOURCE = textwrap.dedent(
    """\
    package store

    import (
    	"fmt"
    	j "encoding/json"
    	"os"
    )

    // Load reads the file at path
    // and returns its contents.
    func Load(path string, opts ...Option) (string, error) {
    	data, err := os.ReadFile(path)
    	if err != nil {
    		return "", fmt.Errorf("load: %w", err)
    	}
    	return string(data), nil
    }

    func tiny() {}

    type Repo struct{ dir string }

    func (r *Repo) Save(name string, n, m int) error {
    	path := r.dir + "/" + name
    	return os.WriteFile(path, nil, 0644)
    }

    func (Repo) Kind() string {
    	kind := "repo"
    	return kind
    }
    """
).encode("utf-8")


@pytest.fixture
def units():
    return GoExtractor().extract("store/repo.go", SOURCE)


def by_name(units, name):
    return next(u for u in units if u.name == name)


class TestGoExtractor:
    """Tests for function and method extraction."""

    def test_language(self):
        assert GoExtractor().language == "go"

    def test_extracts_functions_and_methods(self, units):
        assert [u.name for u in units] == ["Load", "(*Repo).Save", "(Repo).Kind"]

    def test_short_units_dropped(self, units):
        assert all(u.name != "tiny" for u in units)

    def test_function_metadata(self, units):
        unit = by_name(units, "Load")

        assert unit.node_type == "function"
        assert (unit.start_line, unit.end_line) == (11, 17)
        assert unit.package_name == "store"
        assert unit.imports == ["fmt", "j=encoding/json", "os"]
        assert unit.signature == "func Load(path string, opts ...Option) (string, error)"
        assert unit.doc == "Load reads the file at path\nand returns its contents."
        assert unit.param_types == ["string", "...Option"]
        assert unit.return_types == ["string", "error"]
        assert unit.has_error_return is True
        assert unit.receiver == ""

    def test_callees_are_sorted_qualified_names(self, units):
        callees = by_name(units, "Load").callees

        assert {"fmt.Errorf", "os.ReadFile"} <= set(callees)
        assert callees == sorted(set(callees))

    def test_method_metadata(self, units):
        unit = by_name(units, "(*Repo).Save")

        assert unit.node_type == "method"
        assert unit.receiver == "*Repo"
        assert unit.signature == "func (r *Repo) Save(name string, n int, m int) error"
        assert unit.param_types == ["string", "int", "int"]
        assert unit.return_types == ["error"]
        assert unit.has_error_return is True
        assert unit.callees == ["os.WriteFile"]
        assert unit.doc == ""

    def test_unnamed_receiver(self, units):
        unit = by_name(units, "(Repo).Kind")

        assert unit.receiver == "Repo"
        assert unit.signature == "func (Repo) Kind() string"
        assert unit.has_error_return is False

    def test_content_is_exact_source_span(self, units):
        unit = by_name(units, "Load")

        assert SOURCE[unit.start_byte : unit.end_byte].decode("utf-8") == unit.content
        assert unit.content.startswith("func Load(")
        assert unit.content.endswith("}")

    def test_file_without_functions(self):
        assert GoExtractor().extract("consts.go", b"package consts\n\nconst X = 1\n") == []

    def test_syntax_error_raises(self):
        with pytest.raises(ExtractionError, match="broken.go"):
            GoExtractor().extract("broken.go", b"package main\n\nfunc broken( {\n")
