from __future__ import annotations

import json
from pathlib import Path

import pytest
from _support import login_headers
from fastapi.testclient import TestClient

from archive_pmn.app import create_app
from archive_pmn.home import HOME_ENV_VAR
from archive_pmn.internal.create_admin import main


def test_create_admin_creates_then_promotes(tmp_path: Path, monkeypatch, capsys) -> None:
    argv = ["--home", str(tmp_path), "--email", "Chef@PMN.sn", "--password", "motdepasse"]

    assert main(argv) == 0
    first = json.loads(capsys.readouterr().out)
    assert first["email"] == "chef@pmn.sn"
    assert first["created"] is True

    assert main(argv) == 0
    second = json.loads(capsys.readouterr().out)
    assert second["created"] is False
    assert second["user_id"] == first["user_id"]

    monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path))
    with TestClient(create_app()) as client:
        headers = login_headers(client, "chef@pmn.sn", "motdepasse")
        me = client.get("/v1/auth/me", headers=headers).json()["data"]
        assert me["role"] == "super_admin"
        assert me["is_verified"] is True


def test_create_admin_rejects_short_password(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--home", str(tmp_path), "--email", "chef@pmn.sn", "--password", "123"])
    assert exc.value.code == 2
