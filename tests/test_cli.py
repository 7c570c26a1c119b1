import json
import sys

import pytest

import apps.arena.main as cli
from codearena.session.store import load_session
from codearena.transport.fetcher import ResilientFetcher

from conftest import ScriptedTransport, battle_payload, entry_payload, json_result


@pytest.fixture
def session_file(tmp_path, monkeypatch):
    path = tmp_path / "session.json"
    monkeypatch.setenv("ARENA_SESSION_FILE", str(path))
    monkeypatch.setenv("ARENA_API_BASE", "https://arena.test/backend")
    return path


@pytest.fixture
def scripted(monkeypatch, sleeper):
    primary = ScriptedTransport()

    class Factory:
        @staticmethod
        def from_cfg(cfg, session):
            return ResilientFetcher(cfg.api_base_url, session, primary=primary,
                                    secondary=ScriptedTransport(), sleep=sleeper)

    monkeypatch.setattr(cli, "ResilientFetcher", Factory)
    return primary


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["arena", "--env-file", "missing.env", *argv])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


def test_login_then_logout(monkeypatch, session_file, capsys):
    assert run_cli(monkeypatch, "login", "--token", "tok", "--username", "alice") == 0
    assert load_session(session_file).username == "alice"
    assert "Logged in as alice" in capsys.readouterr().out

    assert run_cli(monkeypatch, "logout") == 0
    assert not session_file.exists()


def test_battle_show_prints_actions(monkeypatch, session_file, scripted, capsys):
    session_file.write_text(json.dumps({"token": "tok", "username": "bob"}))
    scripted.steps.append(json_result(200, {"success": True, "data": {"battle": battle_payload()}}))

    assert run_cli(monkeypatch, "battle", "show", "b1") == 0

    out = capsys.readouterr().out
    assert "[battle b1] Two Sum Duel | waiting | alice vs -" in out
    assert "Actions: join" in out
    assert scripted.calls[0].headers["Authorization"] == "Bearer tok"


def test_battle_join_rejected_exits_nonzero(monkeypatch, session_file, scripted, capsys):
    scripted.steps.append(json_result(409, {"success": False, "message": "Battle already started"}))

    assert run_cli(monkeypatch, "battle", "join", "b1") == 1

    assert "Battle already started" in capsys.readouterr().err
    assert len(scripted.calls) == 1


def test_leaderboard_command(monkeypatch, session_file, scripted, capsys, tmp_path):
    scripted.steps.append(json_result(200, [
        entry_payload(1, 10, username="low"),
        entry_payload(2, 90, username="high", isCurrentUser=True, rank=1),
    ]))

    code = run_cli(monkeypatch, "leaderboard", "--view-cfg", str(tmp_path / "none.yml"), "--top", "5")

    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[2].split()[:2] == ["1", "high"]
    assert lines[3].split()[:2] == ["2", "low"]
    assert "You: #1 with 90 points" in lines


def test_challenges_daily_command(monkeypatch, session_file, scripted, capsys):
    scripted.steps.append(json_result(200, {"success": True, "data": {"challenge": {
        "id": 3, "title": "Valid Parentheses", "difficulty": "medium", "points": 20,
        "tags": ["stack"], "is_daily": True, "solved_count": 4, "description": "Match the brackets.",
    }}}))

    assert run_cli(monkeypatch, "challenges", "--daily") == 0

    out = capsys.readouterr().out
    assert "[challenge 3] Valid Parentheses | medium | 20 pts | solved by 4 | daily [stack]" in out
    assert "Match the brackets." in out


def test_challenges_list_command(monkeypatch, session_file, scripted, capsys):
    scripted.steps.append(json_result(200, {"success": True, "data": {
        "items": [{"id": 1, "title": "Two Sum", "difficulty": "easy", "points": 10}],
        "pagination": {"current_page": 1, "total_pages": 3},
    }}))

    assert run_cli(monkeypatch, "challenges", "--difficulty", "easy") == 0

    out = capsys.readouterr().out
    assert "[challenge 1] Two Sum | easy | 10 pts | solved by 0" in out
    assert "Page 1/3" in out
    assert "difficulty=easy" in scripted.calls[0].url


def test_run_with_missing_source_file_reports_error(monkeypatch, session_file, scripted, capsys, tmp_path):
    code = run_cli(monkeypatch, "run", "--file", str(tmp_path / "missing.py"))

    assert code == 1
    err = capsys.readouterr().err
    assert "Error: cannot read" in err
    assert "missing.py" in err
    assert scripted.calls == []
