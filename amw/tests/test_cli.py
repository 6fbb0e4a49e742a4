import json

from amw import cli
from amw.src.memory import MemoryStore
from amw.src.trajectory import build_trajectory


def _seed(store_dir):
    store = MemoryStore(store_dir / "memory.db")
    store.save_trajectory(
        build_trajectory(
            trajectory_id="google_search",
            site="google.com",
            task_type="web_search",
            intent="search openai news",
            steps=[{"id": "s1", "action": "open", "target": "https://google.com"}],
        )
    )
    return store


def test_list_and_search(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    _seed(tmp_path / "data")

    assert cli.main(["list", "--store-dir", str(tmp_path / "data")]) == 0
    out = capsys.readouterr().out
    assert "google_search | site=google.com task_type=web_search" in out

    code = cli.main(
        ["search", "--store-dir", str(tmp_path / "data"), "--site", "google.com", "--task-type", "web_search", "--intent", "openai news"]
    )
    assert code == 0
    assert "1. google_search score=" in capsys.readouterr().out


def test_validate_exit_codes(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"amw_match_line": "amw ok", "steps": [{"action": "open", "target": "https://x"}]}), encoding="utf-8")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"action": "eval_js"}]), encoding="utf-8")

    assert cli.main(["validate", "--steps-file", str(good)]) == 0
    assert json.loads(capsys.readouterr().out)["ok"] is True
    assert cli.main(["validate", "--steps-file", str(bad)]) == 2
    assert json.loads(capsys.readouterr().out)["errors"]


def test_runtime_vars_precedence(tmp_path):
    vars_file = tmp_path / "vars.json"
    vars_file.write_text(json.dumps({"query": "file", "page": 1}), encoding="utf-8")
    args = cli.build_parser().parse_args(
        [
            "run", "--site", "x.com", "--task-type", "t", "--intent", "i",
            "--vars-file", str(vars_file), "--vars-json", '{"page": 2}', "--query", "cli",
        ]
    )
    assert cli.parse_runtime_vars(args) == {"query": "cli", "page": 2}


def test_no_command_prints_help(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    assert cli.main([]) == 1
