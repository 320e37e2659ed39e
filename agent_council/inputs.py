"""Query files with frontmatter, and code artifacts for review."""

from dataclasses import dataclass
from pathlib import Path

import frontmatter

MAX_ARTIFACT_BYTES = 512 * 1024


@dataclass(frozen=True)
class QueryFile:
    text: str
    model: str | None = None
    max_iterations: int | None = None
    source: str = ""


def parse_query_file(file_path: Path) -> QueryFile:
    """Parse a markdown query with optional YAML frontmatter.

    Recognized metadata keys: model (str), max_iterations (int). Other keys
    are ignored.

    Raises:
        ValueError: If the body is empty or max_iterations is not a positive int.
    """
    post = frontmatter.load(str(file_path))
    text = post.content.strip()
    if not text:
        raise ValueError(f"Query file has no body: {file_path}")

    metadata = dict(post.metadata)
    max_iterations = metadata.get("max_iterations")
    if max_iterations is not None:
        try:
            max_iterations = int(max_iterations)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"max_iterations must be an integer, got {max_iterations!r}") from exc
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    model = metadata.get("model")
    return QueryFile(
        text=text,
        model=str(model) if model else None,
        max_iterations=max_iterations,
        source=str(file_path),
    )


def load_code_artifact(file_path: Path) -> str:
    """Read a source file for council review.

    Raises:
        ValueError: If the file is empty or larger than MAX_ARTIFACT_BYTES.
    """
    size = file_path.stat().st_size
    if size > MAX_ARTIFACT_BYTES:
        raise ValueError(f"{file_path} is {size} bytes, limit is {MAX_ARTIFACT_BYTES}")
    code = file_path.read_text(encoding="utf-8", errors="replace")
    if not code.strip():
        raise ValueError(f"{file_path} is empty")
    return code
