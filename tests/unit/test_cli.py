"""Tests for the notenest CLI."""

import json
from pathlib import Path

from typer.testing import CliRunner, Result

from notenest.cli import app

runner = CliRunner()


def _run(data_dir: Path, *args: str) -> Result:
    return runner.invoke(app, [*args, "--data-dir", str(data_dir)])


def _add(data_dir: Path, title: str, *extra: str) -> str:
    result = _run(data_dir, "add", title, *extra)
    assert result.exit_code == 0, result.output
    return result.stdout.strip()


def test_add_and_list_cards(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    _add(tmp_path, "Plan", "--parent", work)
    _add(tmp_path, "Home")

    result = _run(tmp_path, "ls")
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert "Home" in lines[0]
    assert f"Work (1 inside)  [id={work}]" in lines[1]


def test_ls_json_output(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    _add(tmp_path, "Plan", "--parent", work)

    result = _run(tmp_path, "ls", work, "--json")
    data = json.loads(result.stdout)
    assert data["count"] == 1
    assert data["cards"][0]["title"] == "Plan"
    assert data["cards"][0]["parent_id"] == work


def test_ls_unknown_card_fails(tmp_path: Path) -> None:
    result = _run(tmp_path, "ls", "nope")
    assert result.exit_code == 1


def test_delete_trash_and_restore(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    _add(tmp_path, "Plan", "--parent", work)

    assert _run(tmp_path, "rm", work).exit_code == 0
    assert "No cards." in _run(tmp_path, "ls").stdout

    trash = json.loads(_run(tmp_path, "trash", "--json").stdout)
    assert [c["title"] for c in trash["cards"]] == ["Work"]

    assert _run(tmp_path, "restore", work).exit_code == 0
    assert "Recycle bin is empty." in _run(tmp_path, "trash").stdout
    assert "Work" in _run(tmp_path, "ls").stdout


def test_move_into_own_subtree_fails(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    plan = _add(tmp_path, "Plan", "--parent", work)

    result = _run(tmp_path, "move", work, "--to", plan)
    assert result.exit_code == 1
    assert f"Work (1 inside)  [id={work}]" in _run(tmp_path, "ls").stdout


def test_purge_requires_card_in_recycle_bin(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    assert _run(tmp_path, "purge", work).exit_code == 1

    _run(tmp_path, "rm", work)
    assert _run(tmp_path, "purge", work).exit_code == 0
    assert "Recycle bin is empty." in _run(tmp_path, "trash").stdout


def test_note_and_search(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    assert _run(tmp_path, "note", work, "Quarterly planning notes").exit_code == 0

    result = _run(tmp_path, "search", "quarterly")
    assert "Found 1 results:" in result.stdout
    assert f"[id={work}]" in result.stdout


def test_show_renders_markdown(tmp_path: Path) -> None:
    work = _add(tmp_path, "Work")
    _add(tmp_path, "Plan", "--parent", work)
    _run(tmp_path, "note", work, "first line")

    result = _run(tmp_path, "show", work)
    assert result.stdout.splitlines()[:3] == ["- Work", "  > first line", "    - Plan"]


def test_show_unknown_card_fails(tmp_path: Path) -> None:
    assert _run(tmp_path, "show", "nope").exit_code == 1


def test_reorder_and_step(tmp_path: Path) -> None:
    first = _add(tmp_path, "First")
    second = _add(tmp_path, "Second")

    assert _run(tmp_path, "reorder", first, second).exit_code == 0
    assert "First" in _run(tmp_path, "ls").stdout.splitlines()[0]

    assert _run(tmp_path, "down", first).exit_code == 0
    assert "Second" in _run(tmp_path, "ls").stdout.splitlines()[0]
    assert _run(tmp_path, "down", first).exit_code == 1


def test_export_then_import_override(tmp_path: Path) -> None:
    source = tmp_path / "source"
    target = tmp_path / "target"
    backup = tmp_path / "backup.json"
    _add(source, "Work")
    _add(target, "Scratch")

    result = _run(source, "export", "--output", str(backup))
    assert result.exit_code == 0
    data = json.loads(backup.read_text())
    assert data["version"] == 2
    assert data["exportedAt"].endswith("Z")

    result = _run(target, "import", str(backup), "--mode", "override")
    assert result.exit_code == 0
    assert "Imported 1 cards (override)" in result.stdout
    listing = _run(target, "ls").stdout
    assert "Work" in listing
    assert "Scratch" not in listing


def test_import_merge_keeps_existing_cards(tmp_path: Path) -> None:
    backup = tmp_path / "backup.json"
    backup.write_text(json.dumps({"cards": [{"id": "x1", "title": "Imported", "blocks": []}]}))
    _add(tmp_path, "Existing")

    assert _run(tmp_path, "import", str(backup)).exit_code == 0
    listing = _run(tmp_path, "ls").stdout
    assert "Existing" in listing
    assert "Imported" in listing


def test_import_rejects_missing_and_malformed_files(tmp_path: Path) -> None:
    assert _run(tmp_path, "import", str(tmp_path / "missing.json")).exit_code == 1

    bad = tmp_path / "bad.json"
    bad.write_text("not json")
    assert _run(tmp_path, "import", str(bad)).exit_code == 1
