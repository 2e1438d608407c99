#!/usr/bin/env python3
"""
Fail if any test lacks a Django @tag annotation, or uses a tag that is not one
of the test batches declared under [tool.test-batches] in pyproject.toml.

This is a static AST-based check, no Django import/initialization required.
"""

import ast
import glob
import os
import sys
import tomllib
from typing import Iterable


def find_test_files() -> list[str]:
    files = glob.glob("tests/**/*.py", recursive=True)
    return [f for f in files if os.path.basename(f).startswith("test")]


def decorator_is_tag(node: ast.expr) -> bool:
    # Matches @tag or @tag("...")
    func = node.func if isinstance(node, ast.Call) else node
    return isinstance(func, ast.Name) and func.id == "tag"


def decorator_tags(decorators: Iterable[ast.expr]) -> set[str]:
    tags: set[str] = set()
    for d in decorators:
        if isinstance(d, ast.Call) and decorator_is_tag(d):
            for arg in d.args:
                if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
                    tags.add(arg.value)
    return tags


def has_tag(decorators: Iterable[ast.expr]) -> bool:
    return any(decorator_is_tag(d) for d in decorators)


def collect_tests_and_tags(pyfile: str) -> tuple[int, list[str], set[str]]:
    """Return (total_tests, untagged_names, used_tags)."""
    with open(pyfile, "r", encoding="utf-8") as fh:
        try:
            tree = ast.parse(fh.read(), filename=pyfile)
        except SyntaxError as e:
            print(f"SyntaxError parsing {pyfile}: {e}", file=sys.stderr)
            return 0, [], set()

    total = 0
    untagged: list[str] = []
    used_tags: set[str] = set()

    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name.startswith("test_"):
            total += 1
            used_tags |= decorator_tags(node.decorator_list)
            if not has_tag(node.decorator_list):
                untagged.append(f"{pyfile}::{node.name}")
        elif isinstance(node, ast.ClassDef):
            cls_tagged = has_tag(node.decorator_list)
            used_tags |= decorator_tags(node.decorator_list)
            for n in node.body:
                if isinstance(n, ast.FunctionDef) and n.name.startswith("test_"):
                    total += 1
                    used_tags |= decorator_tags(n.decorator_list)
                    if not (cls_tagged or has_tag(n.decorator_list)):
                        untagged.append(f"{pyfile}::{node.name}.{n.name}")

    return total, untagged, used_tags


def load_declared_batches(pyproject_path: str = "pyproject.toml") -> set[str]:
    try:
        with open(pyproject_path, "rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError:
        return set()
    return set(data.get("tool", {}).get("test-batches", {}).get("tags", []))


def main() -> int:
    files = find_test_files()
    if not files:
        print("No test files found.")
        return 0

    total = 0
    untagged_names: list[str] = []
    used_tags: set[str] = set()
    for f in sorted(files):
        t, names, tags = collect_tests_and_tags(f)
        total += t
        untagged_names.extend(names)
        used_tags |= tags

    ok = True
    if untagged_names:
        ok = False
        print(f"Untagged tests: {len(untagged_names)} of {total}")
        for name in untagged_names:
            print(f" - {name}")
    else:
        print(f"All tests are tagged: {total} tests, 0 untagged")

    declared = load_declared_batches()
    undeclared = used_tags - declared
    if undeclared:
        ok = False
        print("Tags used in tests but not declared in [tool.test-batches]:")
        for tag in sorted(undeclared):
            print(f" - {tag}")
    else:
        print("All used tags are declared test batches.")

    unused = declared - used_tags
    if unused:
        print("Note: declared test batches not used by any test:")
        for tag in sorted(unused):
            print(f" - {tag}")

    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
