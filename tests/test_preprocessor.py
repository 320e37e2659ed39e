"""Tests for agent_council/preprocessor.py."""

import pytest

from agent_council.preprocessor import (
    CHUNK_OVERLAP_LINES,
    MAX_CHUNK_SIZE,
    chunk_code,
    detect_language,
    extract_symbols,
    generate_summary,
    preprocess_code,
)


@pytest.mark.parametrize("code,language", [
    ("import React from 'react'\n", "typescript/react"),
    ("from typing import Any\n", "python"),
    ("def main():\n    pass\n", "python"),
    ("package main\n\nfunc main() {}\n", "go"),
    ("fn main() {\n    let x = 1;\n}\n", "rust"),
    ("public class App {}\n", "java"),
    ("const add = (a, b) => a + b;\n", "javascript"),
    ("SELECT 1;\n", "unknown"),
])
def test_detect_language(code, language):
    assert detect_language(code) == language


def test_extract_python_symbols(sample_code):
    symbols = extract_symbols(sample_code)

    by_name = {s.name: s for s in symbols}
    assert by_name["os"].type == "import"
    assert by_name["load"].type == "function"
    assert by_name["Cache"].type == "class"
    assert by_name["load"].signature.startswith("def load")


def test_extract_javascript_symbols():
    code = (
        "import express from 'express'\n"
        "export function start() {}\n"
        "const handler = async (req) => {}\n"
        "export class Server {}\n"
        "export const PORT = 80\n"
    )

    symbols = [(s.name, s.type, s.line) for s in extract_symbols(code)]

    assert symbols == [
        ("express", "import", 1),
        ("start", "function", 2),
        ("handler", "function", 3),
        ("Server", "class", 4),
        ("PORT", "export", 5),
    ]


def test_long_signatures_are_truncated():
    code = "def f(" + ", ".join(f"arg{i}" for i in range(40)) + "):\n"

    symbol = extract_symbols(code)[0]

    assert symbol.signature.endswith("...")
    assert len(symbol.signature) == 83


def test_small_input_is_single_chunk(sample_code):
    chunks = chunk_code(sample_code, extract_symbols(sample_code))

    assert len(chunks) == 1
    assert chunks[0].content == sample_code
    assert chunks[0].start_line == 1


def _big_module(functions: int = 40) -> str:
    body = "\n".join(f"    value_{j} = compute({j})" for j in range(4))
    return "\n\n".join(f"def function_{i}():\n{body}\n    return value_0" for i in range(functions))


def test_large_input_splits_at_symbols_with_overlap():
    code = _big_module()
    assert len(code) > MAX_CHUNK_SIZE

    chunks = chunk_code(code, extract_symbols(code))

    assert len(chunks) > 1
    for previous, current in zip(chunks, chunks[1:]):
        previous_lines = previous.content.split("\n")[:-1]
        assert current.content.split("\n")[:CHUNK_OVERLAP_LINES] == previous_lines[-CHUNK_OVERLAP_LINES:]
        assert current.start_line == previous.end_line + 1 - CHUNK_OVERLAP_LINES
    assert chunks[-1].end_line == len(code.split("\n"))
    assert chunks[0].symbols[0] == "function_0"


def test_summary_lines():
    code = "import os\n\nclass A:\n    def run(self):\n        pass\n"
    symbols = extract_symbols(code)

    summary = generate_summary(symbols, "python", 5)

    assert summary.split("\n") == [
        "Language: python",
        "Total Lines: 5",
        "Functions: 1",
        "Classes: 1",
        "Imports: 1",
        "",
        "Classes: A",
        "Key Functions: run",
    ]


def test_summary_truncates_function_list():
    code = _big_module(12)

    summary = generate_summary(extract_symbols(code), "python", 1)

    assert summary.endswith("(+2 more)")


def test_preprocess_code(sample_code):
    result = preprocess_code(sample_code)

    assert result.language == "python"
    assert result.total_lines == len(sample_code.split("\n"))
    assert result.summary.startswith("Language: python")
    assert result.chunks