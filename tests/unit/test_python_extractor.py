"""Unit tests for PythonExtractor."""

import textwrap

import pytest

from codebase_vector.core.errors import ExtractionError
from codebase_vector.infrastructure.extraction.python_extractor import PythonExtractor

SOURCE = textwrap.dedent(
    '''\
    import os
    from pathlib import Path


    def load(path: str) -> str:
        """Read a file."""
        data = Path(path).read_text()
        return os.path.basename(path) + data


    def tiny():
        pass


    class Repo:
        @property
        def name(self) -> str:
            value = "repo"
            return value.upper()

        async def fetch(self, key, *, retries: int = 3):
            result = await self.client.get(key)
            return result
    '''
).encode("utf-8")


@pytest.fixture
def units():
    return PythonExtractor().extract("pkg/repo_utils.py", SOURCE)


def by_name(units, name):
    return next(u for u in units if u.name == name)


class TestPythonExtractor:
    """Tests for function and method extraction."""

    def test_language(self):
        assert PythonExtractor().language == "python"

    def test_extracts_functions_and_methods(self, units):
        assert [u.name for u in units] == ["load", "Repo.name", "Repo.fetch"]

    def test_short_units_dropped(self, units):
        """Test that units spanning fewer than 3 lines are not returned."""
        assert all(u.name != "tiny" for u in units)

    def test_function_metadata(self, units):
        unit = by_name(units, "load")

        assert unit.node_type == "function"
        assert unit.start_line == 5
        assert unit.end_line == 8
        assert unit.package_name == "repo_utils"
        assert unit.imports == ["os", "pathlib"]
        assert unit.signature == "def load(path: str) -> str"
        assert unit.doc == "Read a file."
        assert unit.param_types == ["str"]
        assert unit.return_types == ["str"]
        assert "read_text" in unit.callees
        assert "basename" in unit.callees
        assert unit.receiver == ""
        assert unit.has_error_return is False

    def test_content_is_exact_source_span(self, units):
        unit = by_name(units, "load")

        assert unit.content.startswith("def load(path: str) -> str:\n")
        assert unit.content.endswith("return os.path.basename(path) + data\n")
        assert SOURCE[unit.start_byte : unit.end_byte].decode("utf-8") == unit.content

    def test_method_includes_decorator(self, units):
        unit = by_name(units, "Repo.name")

        assert unit.node_type == "method"
        assert unit.receiver == "Repo"
        assert unit.content.lstrip().startswith("@property")

    def test_async_method_signature(self, units):
        unit = by_name(units, "Repo.fetch")

        assert unit.signature.startswith("async def fetch(self, key, *, retries: int=3)")
        assert unit.param_types == ["int"]
        assert unit.return_types == []
        assert "get" in unit.callees

    def test_nested_functions_extracted(self):
        source = textwrap.dedent(
            """\
            def outer():
                def inner(x):
                    y = x + 1
                    return y
                return inner
            """
        ).encode("utf-8")

        names = [u.name for u in PythonExtractor().extract("m.py", source)]

        assert names == ["outer", "inner"]

    def test_crlf_line_numbers(self):
        source = b"def f():\r\n    a = 1\r\n    return a\r\n"

        (unit,) = PythonExtractor().extract("m.py", source)

        assert (unit.start_line, unit.end_line) == (1, 3)
        assert unit.content == source.decode("utf-8")

    def test_syntax_error_raises(self):
        with pytest.raises(ExtractionError, match="m.py"):
            PythonExtractor().extract("m.py", b"def broken(:\n")

    def test_empty_file(self):
        assert PythonExtractor().extract("m.py", b"") == []
