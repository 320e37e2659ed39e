"""Lightweight code preprocessing: language guess, symbol map, chunks, summary.

The summary seeds the moderator's intake prompt and stands in for the code
map when the moderator is unavailable.
"""

import re
from dataclasses import dataclass, field

MAX_CHUNK_SIZE = 2000    # characters
CHUNK_OVERLAP_LINES = 5
MAX_SIGNATURE = 80
MAX_LISTED_FUNCTIONS = 10


@dataclass(frozen=True)
class CodeSymbol:
    name: str
    type: str              # function, class, import, export
    line: int
    signature: str = ""


@dataclass(frozen=True)
class CodeChunk:
    content: str
    start_line: int
    end_line: int
    symbols: tuple[str, ...] = ()


@dataclass
class PreprocessedCode:
    language: str
    total_lines: int
    summary: str
    symbols: list[CodeSymbol] = field(default_factory=list)
    chunks: list[CodeChunk] = field(default_factory=list)


# First matching pattern wins for a line
_SYMBOL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("function", re.compile(r"^\s*(?:async\s+)?def\s+(\w+)")),
    ("class", re.compile(r"^\s*class\s+(\w+)")),
    ("function", re.compile(r"^(?:export\s+)?(?:async\s+)?function\s+(\w+)")),
    ("function", re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s+)?\([^)]*\)\s*=>")),
    ("function", re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*function")),
    ("class", re.compile(r"^(?:export\s+)?(?:abstract\s+)?class\s+(\w+)")),
    ("function", re.compile(r"^func\s+(?:\([^)]*\)\s*)?(\w+)")),
    ("function", re.compile(r"^\s*(?:pub\s+)?fn\s+(\w+)")),
    ("import", re.compile(r"^import\s+.*from\s+['\"]([^'\"]+)['\"]")),
    ("import", re.compile(r"^from\s+([\w.]+)\s+import\b")),
    ("import", re.compile(r"^import\s+([\w.]+)")),
    ("export", re.compile(r"^export\s+(?:default\s+)?(?:const|let|var)\s+(\w+)")),
)


def detect_language(code: str) -> str:
    if "import React" in code or "tsx" in code or "jsx" in code:
        return "typescript/react"
    if "from typing import" in code or "def " in code:
        return "python"
    if "package main" in code or "func " in code:
        return "go"
    if "fn " in code and "let " in code:
        return "rust"
    if "public class" in code or "private void" in code:
        return "java"
    if "const " in code or "function " in code or "=>" in code:
        return "javascript"
    return "unknown"


def extract_symbols(code: str) -> list[CodeSymbol]:
    symbols: list[CodeSymbol] = []
    for number, line in enumerate(code.split("\n"), start=1):
        for kind, pattern in _SYMBOL_PATTERNS:
            match = pattern.search(line)
            if match:
                stripped = line.strip()
                signature = stripped[:MAX_SIGNATURE] + ("..." if len(stripped) > MAX_SIGNATURE else "")
                symbols.append(CodeSymbol(match.group(1), kind, number, signature))
                break
    return symbols


def _unique(names: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


def chunk_code(code: str, symbols: list[CodeSymbol]) -> list[CodeChunk]:
    """Split code at symbol boundaries once a chunk exceeds MAX_CHUNK_SIZE.

    Each new chunk repeats the last few lines of the previous one.
    """
    lines = code.split("\n")
    if len(code) <= MAX_CHUNK_SIZE:
        return [CodeChunk(code, 1, len(lines), _unique([s.name for s in symbols]))]

    by_line = {}
    for symbol in symbols:
        by_line.setdefault(symbol.line, symbol)

    chunks: list[CodeChunk] = []
    current: list[str] = []
    size = 0
    start_line = 1
    names: list[str] = []

    for number, line in enumerate(lines, start=1):
        symbol = by_line.get(number)
        if size > MAX_CHUNK_SIZE and symbol is not None:
            chunks.append(CodeChunk("\n".join(current) + "\n", start_line, number - 1, _unique(names)))
            current = current[-CHUNK_OVERLAP_LINES:]
            start_line = max(1, number - len(current))
            size = sum(len(c) + 1 for c in current)
            names = []
        current.append(line)
        size += len(line) + 1
        if symbol is not None:
            names.append(symbol.name)

    if "".join(current).strip():
        chunks.append(CodeChunk("\n".join(current), start_line, len(lines), _unique(names)))
    return chunks


def generate_summary(symbols: list[CodeSymbol], language: str, total_lines: int) -> str:
    functions = [s.name for s in symbols if s.type == "function"]
    classes = [s.name for s in symbols if s.type == "class"]
    imports = [s for s in symbols if s.type == "import"]

    lines = [
        f"Language: {language}",
        f"Total Lines: {total_lines}",
        f"Functions: {len(functions)}",
        f"Classes: {len(classes)}",
        f"Imports: {len(imports)}",
        "",
    ]
    if classes:
        lines.append(f"Classes: {', '.join(classes)}")
    if functions:
        listed = f"Key Functions: {', '.join(functions[:MAX_LISTED_FUNCTIONS])}"
        if len(functions) > MAX_LISTED_FUNCTIONS:
            listed += f" (+{len(functions) - MAX_LISTED_FUNCTIONS} more)"
        lines.append(listed)
    return "\n".join(lines).rstrip()


def preprocess_code(code: str) -> PreprocessedCode:
    language = detect_language(code)
    symbols = extract_symbols(code)
    total_lines = len(code.split("\n"))
    return PreprocessedCode(
        language=language,
        total_lines=total_lines,
        summary=generate_summary(symbols, language, total_lines),
        symbols=symbols,
        chunks=chunk_code(code, symbols),
    )
