# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Standalone Python source analyzer run in a child interpreter.

This file is copied verbatim to a temp path and executed as a script, so it
must only depend on the standard library.

Protocol:
    python <script> symbols            < source
    python <script> complexity         < source
    python <script> references <name>  < source

The source text is read from stdin and a single JSON object is written to
stdout: {"success": true, ...payload} or {"success": false, "error": "..."}.
"""

import ast
import json
import sys

FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)
BRANCH_NODES = (ast.If, ast.For, ast.While, ast.And, ast.Or, ast.ExceptHandler)


def analyze_code(code):
    try:
        tree = ast.parse(code)
        symbols = []

        for node in ast.walk(tree):
            if isinstance(node, FUNCTION_NODES):
                symbols.append({
                    "name": node.name,
                    "kind": "function",
                    "line": node.lineno,
                    "column": node.col_offset,
                    "endLine": node.end_lineno,
                    "docstring": ast.get_docstring(node),
                })
            elif isinstance(node, ast.ClassDef):
                symbols.append({
                    "name": node.name,
                    "kind": "class",
                    "line": node.lineno,
                    "column": node.col_offset,
                    "endLine": node.end_lineno,
                    "docstring": ast.get_docstring(node),
                })
            elif isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name):
                        symbols.append({
                            "name": target.id,
                            "kind": "variable",
                            "line": node.lineno,
                            "column": node.col_offset,
                        })
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                for alias in node.names:
                    symbols.append({
                        "name": alias.name,
                        "kind": "import",
                        "line": node.lineno,
                        "column": node.col_offset,
                    })

        return {"success": True, "symbols": symbols}
    except SyntaxError as e:
        return {"success": False, "error": "SyntaxError: %s" % e}
    except (ValueError, RecursionError) as e:
        return {"success": False, "error": str(e)}


def cyclomatic_complexity(node):
    complexity = 1
    for child in ast.walk(node):
        if isinstance(child, BRANCH_NODES):
            complexity += 1
        elif isinstance(child, ast.BoolOp):
            complexity += len(child.values) - 1
    return complexity


def calculate_complexity(code):
    try:
        tree = ast.parse(code)
        functions = []
        classes = []
        total_complexity = 1

        for node in ast.walk(tree):
            if isinstance(node, FUNCTION_NODES):
                func_complexity = cyclomatic_complexity(node)
                functions.append({
                    "name": node.name,
                    "complexity": func_complexity,
                    "line": node.lineno,
                })
                total_complexity += func_complexity
            elif isinstance(node, ast.ClassDef):
                method_count = sum(1 for n in node.body if isinstance(n, FUNCTION_NODES))
                classes.append({
                    "name": node.name,
                    "methods": method_count,
                    "line": node.lineno,
                })

        return {
            "success": True,
            "cyclomaticComplexity": total_complexity,
            "functions": functions,
            "classes": classes,
        }
    except SyntaxError as e:
        return {"success": False, "error": "SyntaxError: %s" % e}
    except (ValueError, RecursionError) as e:
        return {"success": False, "error": str(e)}


def _match_reference(node, symbol_name):
    """Return (kind, is_definition) when node refers to symbol_name, else None."""
    if isinstance(node, FUNCTION_NODES) and node.name == symbol_name:
        return "function", True
    if isinstance(node, ast.ClassDef) and node.name == symbol_name:
        return "class", True
    if isinstance(node, ast.Name) and node.id == symbol_name:
        if isinstance(node.ctx, ast.Store):
            return "variable", True
        return "usage", False
    if isinstance(node, ast.Attribute) and node.attr == symbol_name:
        return "usage", False
    if isinstance(node, ast.arg) and node.arg == symbol_name:
        return "parameter", True
    if isinstance(node, (ast.Import, ast.ImportFrom)):
        for alias in node.names:
            if alias.name == symbol_name or alias.asname == symbol_name:
                return "import", True
    return None


def find_references(code, symbol_name):
    try:
        tree = ast.parse(code)
        references = []
        lines = code.splitlines()

        for node in ast.walk(tree):
            match = _match_reference(node, symbol_name)
            lineno = getattr(node, "lineno", 0)
            if match is None or lineno <= 0:
                continue
            kind, is_def = match
            text = lines[lineno - 1].strip() if lineno - 1 < len(lines) else ""
            references.append({
                "name": symbol_name,
                "kind": kind,
                "line": lineno,
                "column": getattr(node, "col_offset", 0),
                "isDefinition": is_def,
                "text": text,
            })

        return {"success": True, "references": references}
    except SyntaxError as e:
        return {"success": False, "error": "SyntaxError: %s" % e}
    except (ValueError, RecursionError) as e:
        return {"success": False, "error": str(e)}


def run(action, args, code):
    if action == "symbols":
        return analyze_code(code)
    if action == "complexity":
        return calculate_complexity(code)
    if action == "references":
        return find_references(code, args[0] if args else "")
    return {"success": False, "error": "Unknown action: %s" % action}


def main():
    code = sys.stdin.buffer.read().decode("utf-8", errors="replace")
    action = sys.argv[1] if len(sys.argv) > 1 else "symbols"
    result = run(action, sys.argv[2:], code)
    sys.stdout.write(json.dumps(result))
    sys.stdout.write("\n")
    sys.stdout.flush()


if __name__ == "__main__":
    main()
