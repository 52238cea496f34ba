from __future__ import annotations

import pytest

from notevault.loaders.vault import VaultLoadError, load_markdown_bytes, load_vault


def test_load_vault_reads_markdown_recursively(tmp_path) -> None:
    vault = tmp_path / "notes"
    (vault / "2025").mkdir(parents=True)
    (vault / "2025" / "7月18日.md").write_text("授業の記録", encoding="utf-8")
    (vault / "index.md").write_text("目次", encoding="utf-8")
    (vault / "image.png").write_bytes(b"\x89PNG")

    files = load_vault(vault)

    assert [item.path for item in files] == ["notes/2025/7月18日.md", "notes/index.md"]
    assert files[0].content == "授業の記録"
    assert files[0].absolute_path == str((vault / "2025" / "7月18日.md").resolve())


def test_load_vault_requires_markdown(tmp_path) -> None:
    (tmp_path / "readme.txt").write_text("text", encoding="utf-8")

    with pytest.raises(VaultLoadError):
        load_vault(tmp_path)
    with pytest.raises(VaultLoadError):
        load_vault(tmp_path / "missing")


def test_load_markdown_bytes_defaults_absolute_path() -> None:
    document = load_markdown_bytes("# 見出し".encode("utf-8"), path="vault/a.md")

    assert document.absolute_path == "vault/a.md"
    assert document.content == "# 見出し"
