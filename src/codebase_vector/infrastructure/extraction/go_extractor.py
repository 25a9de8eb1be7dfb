from tree_sitter import Node

from codebase_vector.core.errors import ExtractionError
from codebase_vector.core.models import CodeUnit
from codebase_vector.infrastructure.extraction.tree_sitter_manager import (
    is_long_enough,
    leading_comment,
    line_span,
    new_parser,
    node_text,
    run_query,
    squash,
)

CALLS_QUERY = "(call_expression function: (_) @callee)"


class GoExtractor:
    """
    Extracts top-level functions and methods from Go source with tree-sitter.
    Methods are named `(Receiver).Name`, e.g. `(*Repo).Save`.
    """

    @property
    def language(self) -> str:
        return "go"

    def extract(self, path: str, data: bytes) -> list[CodeUnit]:
        tree = new_parser("go").parse(data)
        root = tree.root_node
        if root.has_error:
            raise ExtractionError(f"Failed to parse Go code in {path}: syntax error")

        package_name = ""
        imports: list[str] = []
        for child in root.named_children:
            if child.type == "package_clause":
                package_name = next(
                    (node_text(c) for c in child.named_children if c.type == "package_identifier"),
                    "",
                )
            elif child.type == "import_declaration":
                imports.extend(_import_specs(child))
        imports.sort()

        units: list[CodeUnit] = []
        for child in root.named_children:
            if child.type not in ("function_declaration", "method_declaration"):
                continue
            if is_long_enough(child):
                units.append(self._build_unit(child, package_name, imports))
        return units

    def _build_unit(self, decl: Node, package_name: str, imports: list[str]) -> CodeUnit:
        name = node_text(decl.child_by_field_name("name"))
        receiver = ""
        receiver_list = decl.child_by_field_name("receiver")
        if receiver_list is not None:
            fields = _fields(receiver_list)
            receiver = fields[0][1] if fields else ""
            if receiver:
                name = f"({receiver}).{name}"

        params = _fields(decl.child_by_field_name("parameters"))
        results = _results(decl.child_by_field_name("result"))
        return_types = [type_str for _, type_str in results]
        start_line, end_line = line_span(decl)

        return CodeUnit(
            name=name,
            node_type="method" if receiver_list is not None else "function",
            start_line=start_line,
            end_line=end_line,
            start_byte=decl.start_byte,
            end_byte=decl.end_byte,
            content=node_text(decl),
            package_name=package_name,
            imports=imports,
            signature=_signature(decl, receiver_list, params, results),
            receiver=receiver,
            doc=leading_comment(decl),
            callees=_callees(decl),
            param_types=[type_str for _, type_str in params],
            return_types=return_types,
            has_error_return="error" in return_types,
        )


def _import_specs(decl: Node) -> list[str]:
    specs = [c for c in decl.named_children if c.type == "import_spec"]
    for spec_list in (c for c in decl.named_children if c.type == "import_spec_list"):
        specs.extend(c for c in spec_list.named_children if c.type == "import_spec")

    imports = []
    for import_spec in specs:
        path = node_text(import_spec.child_by_field_name("path")).strip('"`')
        alias = import_spec.child_by_field_name("name")
        imports.append(f"{node_text(alias)}={path}" if alias is not None else path)
    return imports


def _fields(param_list: Node | None) -> list[tuple[str, str]]:
    """(name, type) pairs of a parameter list, one per declared name."""
    if param_list is None:
        return []
    fields: list[tuple[str, str]] = []
    for param in param_list.named_children:
        if param.type not in ("parameter_declaration", "variadic_parameter_declaration"):
            continue
        type_str = squash(node_text(param.child_by_field_name("type")))
        if param.type == "variadic_parameter_declaration":
            type_str = "..." + type_str
        names = [node_text(n) for n in param.children_by_field_name("name")]
        if not names:
            fields.append(("", type_str))
        fields.extend((name, type_str) for name in names)
    return fields


def _results(result: Node | None) -> list[tuple[str, str]]:
    if result is None:
        return []
    if result.type == "parameter_list":
        return _fields(result)
    return [("", squash(node_text(result)))]


def _format_fields(fields: list[tuple[str, str]]) -> str:
    return ", ".join(f"{name} {type_str}" if name else type_str for name, type_str in fields)


def _signature(
    decl: Node,
    receiver_list: Node | None,
    params: list[tuple[str, str]],
    results: list[tuple[str, str]],
) -> str:
    signature = "func "
    if receiver_list is not None:
        signature += f"({_format_fields(_fields(receiver_list))}) "
    signature += f"{node_text(decl.child_by_field_name('name'))}({_format_fields(params)})"
    if len(results) == 1 and not results[0][0]:
        signature += f" {results[0][1]}"
    elif results:
        signature += f" ({_format_fields(results)})"
    return signature


def _callees(decl: Node) -> list[str]:
    body = decl.child_by_field_name("body")
    if body is None:
        return []
    names = {
        squash(node_text(node)).replace(" ", "")
        for node in run_query("go", body, CALLS_QUERY).get("callee", [])
        if node.type in ("identifier", "selector_expression")
    }
    return sorted(names)
