from __future__ import annotations

import re
from pathlib import Path

import pytest
from support import COVER_LETTER_DOCUMENT, CV_DOCUMENT, CV_TEXT, EXTRACTION, FakeLLM
from typer.testing import CliRunner

from cvtailor.cli.app import app

runner = CliRunner()


def test_cli_profile_documents_and_generation(tmp_path: Path, monkeypatch) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)
    monkeypatch.setattr("cvtailor.core.generator.LLMRouter", lambda *args, **kwargs: llm)

    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    assert "cached_extractions" in result.output

    result = runner.invoke(app, ["profile", "create", "--name", "Jane Doe", "--summary", "Data engineer"])
    assert result.exit_code == 0, result.output
    profile_id = re.search(r'"id": (\d+)', result.output).group(1)

    cv_file = tmp_path / "cv.txt"
    cv_file.write_text(CV_TEXT, encoding="utf-8")
    result = runner.invoke(app, ["document", "add", "--profile-id", profile_id, "--file", str(cv_file)])
    assert result.exit_code == 0, result.output
    assert '"kind": "cv"' in result.output

    result = runner.invoke(app, ["document", "add", "--profile-id", profile_id, "--file", str(cv_file), "--kind", "memo"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["facts", "status", "--profile-id", profile_id])
    assert result.exit_code == 0, result.output
    assert '"status": "none"' in result.output

    job_file = tmp_path / "job.txt"
    job_file.write_text("Lead the data platform team.", encoding="utf-8")
    result = runner.invoke(
        app,
        [
            "generate",
            "cv",
            "--profile-id",
            profile_id,
            "--job-title",
            "Lead Data Engineer",
            "--job-file",
            str(job_file),
            "--template",
            "hybrid",
        ],
    )
    assert result.exit_code == 0, result.output
    assert '"status": "ready"' in result.output
    assert '"headline": "Senior Data Engineer"' in result.output
    assert len(llm.calls_for("writer")) == 1


def test_cli_generation_error_exits_non_zero(tmp_path: Path, monkeypatch) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer="not a document")
    monkeypatch.setattr("cvtailor.core.generator.LLMRouter", lambda *args, **kwargs: llm)

    result = runner.invoke(app, ["profile", "create", "--name", "Jane Doe"])
    profile_id = re.search(r'"id": (\d+)', result.output).group(1)
    job_file = tmp_path / "job.txt"
    job_file.write_text("Lead the data platform team.", encoding="utf-8")

    result = runner.invoke(
        app,
        ["generate", "cv", "--profile-id", profile_id, "--job-title", "Lead", "--job-file", str(job_file)],
    )
    assert result.exit_code == 1


def _profile_with_cv(tmp_path: Path) -> tuple[str, Path]:
    result = runner.invoke(app, ["profile", "create", "--name", "Jane Doe"])
    profile_id = re.search(r'"id": (\d+)', result.output).group(1)
    cv_file = tmp_path / "cv.txt"
    cv_file.write_text(CV_TEXT, encoding="utf-8")
    runner.invoke(app, ["document", "add", "--profile-id", profile_id, "--file", str(cv_file)])
    job_file = tmp_path / "job.txt"
    job_file.write_text("Lead the data platform team.", encoding="utf-8")
    return profile_id, job_file


def test_cli_generates_cover_letter(tmp_path: Path, monkeypatch) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=COVER_LETTER_DOCUMENT)
    monkeypatch.setattr("cvtailor.core.generator.LLMRouter", lambda *args, **kwargs: llm)
    profile_id, job_file = _profile_with_cv(tmp_path)

    result = runner.invoke(
        app,
        [
            "generate",
            "cover-letter",
            "--profile-id",
            profile_id,
            "--job-title",
            "Lead Data Engineer",
            "--company",
            "Initrode",
            "--job-file",
            str(job_file),
        ],
    )
    assert result.exit_code == 0, result.output
    assert '"document_type": "cover_letter"' in result.output
    assert '"greeting": "Dear Initrode hiring team,"' in result.output


@pytest.mark.parametrize(("option", "value"), [("--template", "infographic"), ("--language", "fr")])
def test_cli_rejects_unknown_template_options_cleanly(tmp_path: Path, monkeypatch, option, value) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)
    monkeypatch.setattr("cvtailor.core.generator.LLMRouter", lambda *args, **kwargs: llm)
    profile_id, job_file = _profile_with_cv(tmp_path)

    result = runner.invoke(
        app,
        ["generate", "cv", "--profile-id", profile_id, "--job-title", "Lead", "--job-file", str(job_file), option, value],
    )
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert '"type": "InputError"' in result.output
    assert option.lstrip("-") in result.output
    assert llm.calls == []
