from __future__ import annotations

import sys

import pytest
from rich.console import Console

from logitloom import cli
from logitloom.nodes import BranchFinishReason, Token
from logitloom.store import SerializedTree, load_tree, save_tree


def test_render_tree_shows_probs_and_finish():
    roots = [
        Token(
            text="Hello",
            logprob=-0.1,
            children=[Token(text="!", logprob=-0.5, branch_finished=BranchFinishReason.STOP)],
        )
    ]
    console = Console(record=True, width=120)
    console.print(cli.render_tree(roots, title="toy", show_ids=True))
    text = console.export_text()

    assert "'Hello'" in text
    assert "(0.9048)" in text
    assert "<stop>" in text
    assert roots[0].id in text


def test_expand_command_rewrites_snapshot(tmp_path, monkeypatch):
    from conftest import ToyModelClient

    target = Token(text="b", logprob=-1.2)
    path = tmp_path / "tree.json"
    save_tree(
        str(path),
        SerializedTree("toy", {"kind": "chat", "prompt": "Go"}, [Token(text="a", logprob=-0.5), target]),
    )

    client = ToyModelClient()

    class _Store(cli.TreeStore):
        def __init__(self):
            async def no_sniff(base_url, api_key):
                raise AssertionError("sniffing disabled")

            super().__init__(client_factory=lambda req: client, sniffer=no_sniff)

    monkeypatch.setattr(cli, "TreeStore", _Store)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(
        sys,
        "argv",
        ["logitloom", "expand", "--tree", str(path), "--node", target.id, "--depth", "1", "--max-width", "2", "--no-sniff"],
    )

    cli.main()

    assert client.requests[0]["messages"] == [
        {"role": "user", "content": "Go"},
        {"role": "assistant", "content": "b"},
    ]
    reloaded = load_tree(str(path))
    assert [c.text for c in reloaded.roots[1].children] == ["a", "b"]
    assert reloaded.model_settings["prompt"] == "Go"


def test_missing_api_key_exits_without_touching_snapshot(tmp_path, monkeypatch):
    path = tmp_path / "tree.json"
    target = Token(text="b", logprob=-1.2)
    save_tree(str(path), SerializedTree("toy", {"kind": "chat", "prompt": "Go"}, [target]))
    before = path.read_bytes()

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(
        sys, "argv", ["logitloom", "expand", "--tree", str(path), "--node", target.id, "--no-sniff"]
    )
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    assert exc_info.value.code == 1
    assert path.read_bytes() == before

    out = tmp_path / "new.json"
    monkeypatch.setattr(
        sys, "argv", ["logitloom", "build", "--model", "toy", "--out", str(out), "--no-sniff"]
    )
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    assert exc_info.value.code == 1
    assert not out.exists()
