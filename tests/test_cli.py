from __future__ import annotations

import json

from tools import lasbi_cli

from tests.conftest import build_responses


def _write(tmp_path, name, doc):
    path = tmp_path / name
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


def test_score_command(tmp_path, capsys):
    src = _write(tmp_path, "responses.json", {"responses": build_responses(overrides={"5.3": 6})})
    assert lasbi_cli.main(["score", src]) == 0
    body = json.loads(capsys.readouterr().out)
    assert body["top3"]["primary"]["schemaId"] == "unrelenting_standards_hypercriticalness"


def test_score_command_csv(tmp_path, capsys):
    src = _write(tmp_path, "responses.json", build_responses())
    assert lasbi_cli.main(["score", src, "--csv"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 19


def test_score_command_reports_errors(tmp_path, capsys):
    src = _write(tmp_path, "responses.json", build_responses(drop=["1.1.1"]))
    assert lasbi_cli.main(["score", src]) == 1
    assert "assessment incomplete or corrupted" in capsys.readouterr().err
    assert lasbi_cli.main(["score", src, "--partial"]) == 0


def test_export_then_validate(tmp_path, capsys):
    src = _write(tmp_path, "responses.json", build_responses())
    out = tmp_path / "export.json"
    code = lasbi_cli.main(
        [
            "export", src,
            "--assessment-id", "a-1",
            "--respondent-id", "r-1",
            "--completed-at", "2025-01-01T00:00:00Z",
            "--name", "Rita Lee",
            "--out", str(out),
        ]
    )
    assert code == 0
    assert lasbi_cli.main(["validate", str(out)]) == 0
    assert capsys.readouterr().out.strip().endswith("ok")

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["respondent"]["initials"] == "RL"
    payload["assessment"]["instrument"]["items"][0]["value"] = 6
    bad = _write(tmp_path, "bad.json", payload)
    assert lasbi_cli.main(["validate", bad]) == 1
    assert "provenance.checksumSha256" in capsys.readouterr().out


def test_export_rejects_bad_completed_at(tmp_path, capsys):
    src = _write(tmp_path, "responses.json", build_responses())
    out = tmp_path / "export.json"
    code = lasbi_cli.main(
        [
            "export", src,
            "--assessment-id", "a-1",
            "--respondent-id", "r-1",
            "--completed-at", "yesterday",
            "--out", str(out),
        ]
    )
    assert code == 1
    assert "invalid metadata" in capsys.readouterr().err
    assert not out.exists()
