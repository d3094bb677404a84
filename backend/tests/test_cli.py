# tests/test_cli.py — Command line tests
import pytest

import cli
import project_registry
from auth import AuthService


async def _run(*argv):
    return await cli.run(cli.build_parser().parse_args(list(argv)))


@pytest.mark.asyncio
async def test_mkhuman_and_mkagent(db_engine, db_session, capsys):
    assert await _run("mkhuman", "carol", "--email", "carol@example.dev") == 0
    assert await _run("mkagent", "triage-bot") == 0
    out = capsys.readouterr().out
    assert "Created human user: carol" in out
    assert "Created AI agent user: triage-bot" in out

    carol = await project_registry.get_user_by_username(db_session, "carol")
    bot = await project_registry.get_user_by_username(db_session, "triage-bot")
    assert (carol.type, carol.email) == ("human", "carol@example.dev")
    assert bot.type == "ai"


@pytest.mark.asyncio
async def test_duplicate_user_fails(db_engine, capsys):
    assert await _run("mkhuman", "dave") == 0
    assert await _run("mkagent", "dave") == 1
    assert "already exists" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_auth_prints_token(db_engine, capsys):
    await _run("mkagent", "deploy-bot")
    capsys.readouterr()

    assert await _run("auth", "deploy-bot") == 0
    token = capsys.readouterr().out.strip()
    payload = AuthService.verify_token(token)
    assert int(payload["sub"]) > 0


@pytest.mark.asyncio
async def test_auth_unknown_user(db_engine, capsys):
    assert await _run("auth", "ghost") == 1
    assert "not found" in capsys.readouterr().err


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])
