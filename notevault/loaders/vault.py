from __future__ import annotations

"""Markdown vault loader for ingestion."""

from pathlib import Path, PurePosixPath

from notevault.rag.types import DocumentFile

MARKDOWN_SUFFIX = ".md"


class VaultLoadError(RuntimeError):
    """Raised when a vault directory cannot be read."""
    pass


def is_markdown(name: str) -> bool:
    return name.lower().endswith(MARKDOWN_SUFFIX)


def load_markdown_file(path: Path, relative_to: Path) -> DocumentFile:
    """Load a Markdown file from disk; ``path`` keeps the vault folder name as its first part."""
    content = path.read_text(encoding="utf-8", errors="ignore")
    relative = PurePosixPath(relative_to.name, *path.relative_to(relative_to).parts)
    return DocumentFile(
        path=str(relative),
        absolute_path=str(path.resolve()),
        content=content,
    )


def load_markdown_bytes(data: bytes, path: str, absolute_path: str | None = None) -> DocumentFile:
    """Load uploaded Markdown bytes into a DocumentFile."""
    content = data.decode("utf-8", errors="ignore")
    return DocumentFile(path=path, absolute_path=absolute_path or path, content=content)


def load_vault(directory: Path | str) -> list[DocumentFile]:
    """Load every ``.md`` file below ``directory`` in path order."""
    root = Path(directory).expanduser()
    if not root.is_dir():
        raise VaultLoadError(f"Vault directory not found: {root}")
    files = sorted(
        path for path in root.rglob("*") if path.is_file() and is_markdown(path.name)
    )
    if not files:
        raise VaultLoadError(f"No markdown (.md) files found in {root}")
    return [load_markdown_file(path, root) for path in files]
