"""Tests for the promptcascade command-line interface."""

import json
from types import SimpleNamespace

import litellm
import pytest

from promptcascade import cli


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Leave the root logger alone; main() would otherwise replace its handlers."""
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


def _write_tree(path):
    tree = {
        "nodes": [
            {
                "id": "root",
                "name": "Doc",
                "user_prompt": "Plan a document",
                "children": [
                    {
                        "id": "outline",
                        "name": "Outline",
                        "node_type": "action",
                        "post_action": "create_children_json",
                        "auto_run_children": True,
                        "user_prompt": "List the sections",
                    },
                    {"id": "skip", "name": "Skipped", "exclude_from_cascade": True},
                ],
            }
        ]
    }
    path.write_text(json.dumps(tree), encoding="utf-8")


def _fake_acompletion(responses):
    async def acompletion(**kwargs):
        content = responses.pop(0) if responses else "ok"
        message = SimpleNamespace(content=content, tool_calls=None)
        return SimpleNamespace(
            id=f"resp-{len(responses)}",
            model=kwargs["model"],
            choices=[SimpleNamespace(message=message, finish_reason="stop")],
            usage=SimpleNamespace(prompt_tokens=5, completion_tokens=5),
        )

    return acompletion


def test_show_prints_tree(tmp_path, capsys):
    path = tmp_path / "tree.json"
    _write_tree(path)

    assert cli.main(["show", str(path)]) == 0

    out = capsys.readouterr().out
    assert "- Doc [root] (standard)" in out
    assert "  - Outline [outline] (action, create_children_json, auto-run)" in out
    assert "(standard, excluded)" in out


def test_show_unknown_root(tmp_path, capsys):
    path = tmp_path / "tree.json"
    _write_tree(path)

    assert cli.main(["show", str(path), "missing"]) == 1
    assert "No prompts found" in capsys.readouterr().err


def test_run_cascade_end_to_end(tmp_path, capsys, monkeypatch, isolated_home):
    path = tmp_path / "tree.json"
    _write_tree(path)
    responses = ["Plan text", '{"items": ["Intro", "Body"]}']
    monkeypatch.setattr(litellm, "acompletion", _fake_acompletion(responses))

    exit_code = cli.main(["run", str(path), "root", "--yes"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Status: completed" in out
    assert "[ok] Outline (+2 children)" in out
    assert "[skipped:excluded] Skipped" in out
    assert "Trace: " in out

    saved = json.loads(path.read_text(encoding="utf-8"))
    names = {node["name"] for node in saved["nodes"]}
    assert {"Intro", "Body"} <= names
    assert (isolated_home / "storage" / "costs.jsonl").exists()


def test_run_missing_root(tmp_path, capsys):
    path = tmp_path / "tree.json"
    _write_tree(path)

    assert cli.main(["run", str(path), "ghost", "--yes"]) == 1
    assert "Prompt not found: ghost" in capsys.readouterr().err


def test_cleanup_traces_with_no_storage(capsys):
    assert cli.main(["cleanup-traces"]) == 0
    assert "Marked 0 orphaned trace(s) as failed" in capsys.readouterr().out
