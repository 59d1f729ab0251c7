"""
Tests for the command-line interface.

Commands run through ``main`` against a config file whose state file lives
in a temporary directory; nothing here touches the network.
"""

import io
import json

import pytest

from domain_watcher.cli import create_default_config, main, save_config_to_file
from domain_watcher.crypto import CredentialCipher


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AUTH_SECRET", "cli-test-secret")
    path = tmp_path / "config.json"
    save_config_to_file(create_default_config(state_file=tmp_path / "state.json"), path)
    return path


def test_add_then_status(config_path, capsys) -> None:
    assert main(["-c", str(config_path), "add", "Example.COM", "bücher.de",
                 "--priority", "3", "--tag", "short", "--tag", "brand"]) == 0
    capsys.readouterr()

    assert main(["-c", str(config_path), "status"]) == 0
    domains = json.loads(capsys.readouterr().out)

    assert [d["domain"] for d in domains] == ["example.com", "xn--bcher-kva.de"]
    assert all(d["status"] == "unknown" for d in domains)
    assert domains[0]["priority"] == 3
    assert domains[0]["tags"] == ["brand", "short"]


def test_add_rejects_invalid_and_duplicate(config_path, capsys) -> None:
    assert main(["-c", str(config_path), "add", "not a domain"]) == 1
    assert "Skipping" in capsys.readouterr().err

    assert main(["-c", str(config_path), "add", "example.com"]) == 0
    assert main(["-c", str(config_path), "add", "example.com"]) == 1
    assert "already watched" in capsys.readouterr().err


def test_check_unknown_domain(config_path, capsys) -> None:
    assert main(["-c", str(config_path), "check", "missing.com"]) == 1
    assert "not watched" in capsys.readouterr().err


def test_adapters_lists_registrars(capsys) -> None:
    assert main(["adapters"]) == 0
    names = [entry["name"] for entry in json.loads(capsys.readouterr().out)]
    assert names == ["dynadot", "namecheap", "gandi", "godaddy"]


def test_encrypt_reads_stdin(config_path, monkeypatch, capsys) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("registrar-api-key\n"))

    assert main(["encrypt"]) == 0
    token = capsys.readouterr().out.strip()

    assert CredentialCipher("cli-test-secret").decrypt(token) == "registrar-api-key"


def test_register_requires_master_secret(config_path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("AUTH_SECRET")

    assert main(["-c", str(config_path), "register", "example.com"]) == 1
    assert "AUTH_SECRET" in capsys.readouterr().err


def test_config_init_and_validate(tmp_path, capsys) -> None:
    path = tmp_path / "nested" / "config.json"

    assert main(["config", "init", "--path", str(path)]) == 0
    assert main(["config", "init", "--path", str(path)]) == 1
    assert main(["config", "init", "--path", str(path), "--force"]) == 0
    assert main(["config", "validate", "--path", str(path)]) == 0

    path.write_text("{not json", encoding="utf-8")
    assert main(["config", "validate", "--path", str(path)]) == 1


def test_missing_config_file(tmp_path, capsys) -> None:
    assert main(["-c", str(tmp_path / "absent.json"), "status"]) == 1
    assert "Could not load config" in capsys.readouterr().err
