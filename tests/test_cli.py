import json

import pytest

from extract_credentials import main
from pam_creds.config import CONFIG_ENV_KEY


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_KEY, raising=False)
    monkeypatch.chdir(tmp_path)


def test_extract_writes_document_and_pairs(tmp_path, unified_csv, generated_at):
    out = tmp_path / "creds.json"
    pairs = tmp_path / "pairs.csv"
    code = main(
        [
            "extract",
            str(unified_csv),
            "--output",
            str(out),
            "--pairs-csv",
            str(pairs),
            "--generated-at",
            generated_at,
        ]
    )

    assert code == 0
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert doc["metadata"]["generated_at"] == generated_at
    assert [u["username"] for u in doc["users"]] == ["carol", "dave", "erin"]
    assert pairs.exists()


def test_extract_defaults_to_cwd_output(tmp_path, legacy_csv):
    assert main(["extract", str(legacy_csv)]) == 0
    assert (tmp_path / "user_credentials_clean.json").exists()


def test_extract_failure_returns_error_and_writes_nothing(tmp_path):
    empty = tmp_path / "no_users.csv"
    empty.write_text("Username,Password,SSH_Public_Key\nalice,,\n", encoding="utf-8")
    out = tmp_path / "creds.json"

    assert main(["extract", str(empty), "--output", str(out)]) == 1
    assert not out.exists()


def test_missing_config_is_reported(tmp_path, legacy_csv):
    assert main(["extract", str(legacy_csv), "--config", str(tmp_path / "nope.yaml")]) == 1


def test_unwritable_output_returns_error(tmp_path, unified_csv):
    blocker = tmp_path / "afile"
    blocker.write_text("not a directory", encoding="utf-8")

    assert main(["extract", str(unified_csv), "--output", str(blocker / "creds.json")]) == 1


def test_failed_pairs_csv_keeps_previous_document(tmp_path, unified_csv):
    blocker = tmp_path / "afile"
    blocker.write_text("not a directory", encoding="utf-8")
    out = tmp_path / "creds.json"
    out.write_text("previous", encoding="utf-8")

    code = main(["extract", str(unified_csv), "--output", str(out), "--pairs-csv", str(blocker / "pairs.csv")])

    assert code == 1
    assert out.read_text(encoding="utf-8") == "previous"


def test_inspect_and_lookup(tmp_path, unified_csv, capsys):
    out = tmp_path / "creds.json"
    assert main(["extract", str(unified_csv), "--output", str(out)]) == 0

    assert main(["inspect", str(out)]) == 0

    capsys.readouterr()
    assert main(["lookup", str(out), "--resource", "10.0.0.5"]) == 0
    assert capsys.readouterr().out.split() == ["carol", "dave", "erin"]

    assert main(["lookup", str(out), "--user", "carol"]) == 0
    assert capsys.readouterr().out.split() == ["10.0.0.5", "10.0.0.7"]

    assert main(["lookup", str(out), "--resource", "10.9.9.9"]) == 1
    assert main(["lookup", str(out), "--user", "nobody"]) == 1


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "extract" in capsys.readouterr().out
