from tree_sitter import Node

from codebase_vector.core.models import CodeUnit
from codebase_vector.infrastructure.extraction.tree_sitter_manager import (
    header_text,
    is_long_enough,
    leading_comment,
    line_span,
    new_parser,
    node_text,
    run_query,
    squash,
)

CALLS_QUERY = """
(call_expression function: (_) @callee)
(new_expression constructor: (_) @callee)
"""

FUNCTION_DECLARATIONS = ("function_declaration", "generator_function_declaration")
FUNCTION_VALUES = ("function_expression", "function", "generator_function", "arrow_function")
CLASS_NODES = ("class_declaration", "class", "abstract_class_declaration")


class JavaScriptExtractor:
    """
    Extracts functions from JavaScript source with tree-sitter.

    Units are function declarations, functions and block-bodied arrow
    functions assigned to a variable (named after the variable), and class
    methods named `Class.method`. Bodies are not searched for nested functions.
    """

    ts_aware = False

    @property
    def language(self) -> str:
        return "javascript"

    def grammar_for(self, path: str) -> str:
        return "javascript"

    def extract(self, path: str, data: bytes) -> list[CodeUnit]:
        grammar = self.grammar_for(path)
        root = new_parser(grammar).parse(data).root_node
        imports = _imports(root)

        units: list[CodeUnit] = []
        self._visit(root, grammar, data, imports, units)
        return units

    def _visit(
        self, node: Node, grammar: str, data: bytes, imports: list[str], units: list[CodeUnit]
    ) -> None:
        for child in node.named_children:
            if child.type in FUNCTION_DECLARATIONS:
                name = node_text(child.child_by_field_name("name"))
                self._add(units, child, child, name, "function", grammar, data, imports)
            elif child.type in CLASS_NODES:
                self._visit_class(child, grammar, data, imports, units)
            elif child.type == "variable_declarator":
                value = child.child_by_field_name("value")
                if value is not None and value.type in FUNCTION_VALUES:
                    declaration = child.parent
                    # A lone declarator spans from its const/let/var keyword
                    span = declaration if len(declaration.named_children) == 1 else child
                    name = node_text(child.child_by_field_name("name"))
                    self._add(units, span, value, name, "function", grammar, data, imports)
                else:
                    self._visit(child, grammar, data, imports, units)
            else:
                self._visit(child, grammar, data, imports, units)

    def _visit_class(
        self, cls: Node, grammar: str, data: bytes, imports: list[str], units: list[CodeUnit]
    ) -> None:
        class_name = node_text(cls.child_by_field_name("name"))
        body = cls.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type != "method_definition":
                continue
            name_node = member.child_by_field_name("name")
            method_name = ""
            if name_node is not None and name_node.type != "computed_property_name":
                method_name = node_text(name_node).lstrip("#")
            if class_name and method_name:
                name = f"{class_name}.{method_name}"
            else:
                name = method_name or class_name
            self._add(units, member, member, name, "method", grammar, data, imports)

    def _add(
        self,
        units: list[CodeUnit],
        span: Node,
        func: Node,
        name: str,
        node_type: str,
        grammar: str,
        data: bytes,
        imports: list[str],
    ) -> None:
        body = func.child_by_field_name("body")
        # Expression-bodied arrows are one-liners in practice
        if body is None or body.type != "statement_block" or not is_long_enough(span):
            return

        doc_anchor = span
        if span.parent is not None and span.parent.type == "export_statement":
            doc_anchor = span.parent
        params = func.child_by_field_name("parameters")
        if params is None:
            params = func.child_by_field_name("parameter")
        return_type = func.child_by_field_name("return_type") if self.ts_aware else None
        start_line, end_line = line_span(span)

        units.append(
            CodeUnit(
                name=name,
                node_type=node_type,
                start_line=start_line,
                end_line=end_line,
                start_byte=span.start_byte,
                end_byte=span.end_byte,
                content=node_text(span),
                imports=imports,
                signature=header_text(data, span, body) or f"{name}()",
                doc=leading_comment(doc_anchor),
                callees=_callees(grammar, body),
                param_types=self._param_types(params),
                return_types=[_annotation(return_type)] if return_type is not None else [],
            )
        )

    def _param_types(self, params: Node | None) -> list[str]:
        if params is None:
            return []
        # Bare single parameter of an arrow function
        if params.type != "formal_parameters":
            return [node_text(params)]

        types: list[str] = []
        for param in params.named_children:
            if param.type == "comment":
                continue
            type_node = param.child_by_field_name("type") if self.ts_aware else None
            types.append(_annotation(type_node) if type_node is not None else _param_name(param))
        return types


class TypeScriptExtractor(JavaScriptExtractor):
    """JavaScriptExtractor that also records parameter and return type annotations."""

    ts_aware = True

    @property
    def language(self) -> str:
        return "typescript"

    def grammar_for(self, path: str) -> str:
        return "tsx" if path.lower().endswith(".tsx") else "typescript"


def _imports(root: Node) -> list[str]:
    """Module specifiers of top-level `import ... from` statements and `require()` calls."""
    modules: list[str] = []
    for child in root.named_children:
        if child.type == "import_statement":
            modules.append(_string_value(child.child_by_field_name("source")))
        elif child.type in ("lexical_declaration", "variable_declaration"):
            for declarator in child.named_children:
                if declarator.type != "variable_declarator":
                    continue
                value = declarator.child_by_field_name("value")
                if value is not None and value.type == "call_expression" and _is_require(value):
                    modules.append(_require_target(value))
    return sorted({m for m in modules if m})


def _is_require(call: Node) -> bool:
    function = call.child_by_field_name("function")
    return (
        function is not None
        and function.type == "identifier"
        and node_text(function) == "require"
    )


def _require_target(call: Node) -> str:
    arguments = call.child_by_field_name("arguments")
    if arguments is None or not arguments.named_children:
        return ""
    first = arguments.named_children[0]
    return _string_value(first) if first.type == "string" else ""


def _string_value(node: Node | None) -> str:
    return node_text(node).strip("'\"`")


def _annotation(type_node: Node) -> str:
    return squash(node_text(type_node)).lstrip(":").strip()


def _param_name(param: Node) -> str:
    for field in ("pattern", "left"):
        inner = param.child_by_field_name(field)
        if inner is not None:
            return _param_name(inner)
    if param.type == "rest_pattern" and param.named_children:
        return _param_name(param.named_children[0])
    return squash(node_text(param))


def _callees(grammar: str, body: Node) -> list[str]:
    captured = run_query(grammar, body, CALLS_QUERY).get("callee", [])
    nodes = sorted(captured, key=lambda n: n.start_byte)
    names: list[str] = []
    for node in nodes:
        if node.type == "identifier":
            names.append(node_text(node))
        elif node.type == "member_expression":
            names.append(node_text(node.child_by_field_name("property")))
    return list(dict.fromkeys(n for n in names if n))
