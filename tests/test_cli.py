"""
Tests for the snapshot inspection CLI.
"""
import json

import pytest

from treestate.cli import main
from treestate.storage import FileBackend


@pytest.fixture
def state_dir(tmp_path):
    backend = FileBackend(str(tmp_path))
    backend.set_item("todo", json.dumps({"items": ["milk"]}))
    backend.set_item("app.user", json.dumps({"name": "Guest"}))
    return tmp_path


def test_list(state_dir, capsys):
    assert main(["--dir", str(state_dir), "list"]) == 0
    assert capsys.readouterr().out.split() == ["app.user", "todo"]


def test_show(state_dir, capsys):
    assert main(["--dir", str(state_dir), "show", "todo"]) == 0
    assert json.loads(capsys.readouterr().out) == {"items": ["milk"]}


def test_show_missing(state_dir, capsys):
    assert main(["--dir", str(state_dir), "show", "nope"]) == 1
    assert "No snapshot for nope" in capsys.readouterr().err


def test_clear(state_dir, capsys):
    assert main(["--dir", str(state_dir), "clear", "todo"]) == 0
    assert FileBackend(str(state_dir)).keys() == ["app.user"]


def test_dir_from_config(state_dir, tmp_path, capsys):
    config_path = tmp_path / "treestate.yaml"
    config_path.write_text(f"storage: file\nstorage_dir: {state_dir}\n")

    assert main(["--config", str(config_path), "show", "app.user"]) == 0
    assert json.loads(capsys.readouterr().out) == {"name": "Guest"}


@pytest.mark.parametrize("command", [["list"], ["show", "todo"], ["clear", "todo"]])
def test_missing_dir_is_not_created(tmp_path, capsys, command):
    missing = tmp_path / "nowhere"
    assert main(["--dir", str(missing)] + command) == 1
    assert "No storage directory" in capsys.readouterr().err
    assert not missing.exists()
