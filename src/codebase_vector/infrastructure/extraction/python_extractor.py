import ast
import os
import re

from codebase_vector.core.errors import ExtractionError
from codebase_vector.core.models import CodeUnit

# Units spanning fewer lines than this are not worth embedding
MIN_UNIT_LINES = 3

# Same line breaks the Python tokenizer counts (\n, \r\n, \r), keeping the terminators
_LINE_BREAK = re.compile(r"(?<=\n)|(?<=\r)(?!\n)")


class PythonExtractor:
    """
    Extracts functions and methods from Python source with the stdlib `ast` module.
    Methods are named `Class.method`; nested functions are extracted as well.
    """

    @property
    def language(self) -> str:
        return "python"

    def extract(self, path: str, data: bytes) -> list[CodeUnit]:
        try:
            tree = ast.parse(data, filename=path)
        except (SyntaxError, ValueError) as e:
            raise ExtractionError(f"Failed to parse Python code in {path}: {e}") from e

        source = data.decode("utf-8", errors="replace")
        lines = [line for line in _LINE_BREAK.split(source) if line]
        line_offsets = _line_byte_offsets(lines)
        module_name = os.path.splitext(os.path.basename(path))[0]
        imports = _module_imports(tree)

        units: list[CodeUnit] = []
        self._visit(tree, "", lines, line_offsets, module_name, imports, units)
        return units

    def _visit(
        self,
        node: ast.AST,
        class_name: str,
        lines: list[str],
        line_offsets: list[int],
        module_name: str,
        imports: list[str],
        units: list[CodeUnit],
    ) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.ClassDef):
                self._visit(child, child.name, lines, line_offsets, module_name, imports, units)
                continue

            if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
                unit = self._build_unit(child, class_name, lines, line_offsets, module_name, imports)
                if unit.end_line - unit.start_line + 1 >= MIN_UNIT_LINES:
                    units.append(unit)
                # Nested definitions belong to no class
                self._visit(child, "", lines, line_offsets, module_name, imports, units)
                continue

            self._visit(child, class_name, lines, line_offsets, module_name, imports, units)

    def _build_unit(
        self,
        func: ast.FunctionDef | ast.AsyncFunctionDef,
        class_name: str,
        lines: list[str],
        line_offsets: list[int],
        module_name: str,
        imports: list[str],
    ) -> CodeUnit:
        start_line = min([func.lineno] + [d.lineno for d in func.decorator_list])
        end_line = func.end_lineno or func.lineno
        content = "".join(lines[start_line - 1 : end_line])

        param_types = [
            ast.unparse(arg.annotation)
            for arg in _all_args(func.args)
            if arg.annotation is not None
        ]
        return_types = [ast.unparse(func.returns)] if func.returns is not None else []

        return CodeUnit(
            name=f"{class_name}.{func.name}" if class_name else func.name,
            node_type="method" if class_name else "function",
            start_line=start_line,
            end_line=end_line,
            start_byte=line_offsets[start_line - 1],
            end_byte=line_offsets[end_line],
            content=content,
            package_name=module_name,
            imports=imports,
            signature=_signature(func),
            receiver=class_name,
            doc=ast.get_docstring(func) or "",
            callees=_callees(func),
            param_types=param_types,
            return_types=return_types,
        )


def _line_byte_offsets(lines: list[str]) -> list[int]:
    offsets = [0]
    for line in lines:
        offsets.append(offsets[-1] + len(line.encode("utf-8")))
    return offsets


def _module_imports(tree: ast.Module) -> list[str]:
    imports: list[str] = []
    for node in tree.body:
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            module = "." * node.level + (node.module or "")
            imports.append(module)
    return list(dict.fromkeys(imports))


def _all_args(args: ast.arguments) -> list[ast.arg]:
    collected = [*args.posonlyargs, *args.args]
    if args.vararg:
        collected.append(args.vararg)
    collected.extend(args.kwonlyargs)
    if args.kwarg:
        collected.append(args.kwarg)
    return collected


def _signature(func: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    prefix = "async def" if isinstance(func, ast.AsyncFunctionDef) else "def"
    signature = f"{prefix} {func.name}({ast.unparse(func.args)})"
    if func.returns is not None:
        signature += f" -> {ast.unparse(func.returns)}"
    return signature


def _callees(func: ast.FunctionDef | ast.AsyncFunctionDef) -> list[str]:
    names: list[str] = []
    for node in ast.walk(func):
        if not isinstance(node, ast.Call):
            continue
        target = node.func
        if isinstance(target, ast.Name):
            names.append(target.id)
        elif isinstance(target, ast.Attribute):
            names.append(target.attr)
    return list(dict.fromkeys(names))
