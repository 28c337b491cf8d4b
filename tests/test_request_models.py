import json
import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

import rank_sections
from sectionrank.workflow.request_models import load_input, parse_input

VALID = {
    "documents": [{"filename": "guide.pdf", "title": "Guide"}, {"filename": "other.pdf"}],
    "persona": {"role": "HR professional"},
    "job_to_be_done": {"task": "Create and manage fillable forms"},
}


def test_valid_input_is_parsed():
    request = parse_input(VALID)

    assert [doc.filename for doc in request.documents] == ["guide.pdf", "other.pdf"]
    assert request.documents[1].title is None
    assert request.persona.role == "HR professional"
    assert request.job_to_be_done.task == "Create and manage fillable forms"


@pytest.mark.parametrize(
    "patch,message",
    [
        ({"documents": None}, "Invalid input: documents array is required"),
        ({"documents": "guide.pdf"}, "Invalid input: documents array is required"),
        ({"persona": {}}, "Invalid input: persona.role is required"),
        ({"job_to_be_done": {"task": ""}}, "Invalid input: job_to_be_done.task is required"),
        ({"documents": [{"title": "No filename"}]}, "Invalid input: documents[1].filename is required"),
    ],
)
def test_invalid_input_is_rejected(patch, message):
    with pytest.raises(ValueError) as excinfo:
        parse_input({**VALID, **patch})

    assert str(excinfo.value) == message


def test_load_input_reads_file(tmp_path):
    path = tmp_path / "input.json"
    path.write_text(json.dumps(VALID))

    assert load_input(path).persona.role == "HR professional"


def test_load_input_reports_missing_and_broken_files(tmp_path):
    with pytest.raises(ValueError, match="file not found"):
        load_input(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ValueError, match="Failed to load input"):
        load_input(broken)


def test_cli_exits_non_zero_on_invalid_input(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "input.json"
    path.write_text(json.dumps({"documents": []}))

    code = rank_sections.main(["--input", str(path), "--no-ai"])

    assert code == 1
    assert "Invalid input: persona.role is required" in capsys.readouterr().err


@pytest.mark.parametrize("config_body", ["[1, 2]", "3", '"minMatchScore"'])
def test_cli_rejects_config_that_is_not_an_object(tmp_path, capsys, monkeypatch, config_body):
    monkeypatch.chdir(tmp_path)
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(VALID))
    config_path = tmp_path / "config.json"
    config_path.write_text(config_body)

    code = rank_sections.main(["--input", str(input_path), "--config", str(config_path), "--no-ai"])

    assert code == 1
    assert "expected a JSON object" in capsys.readouterr().err


def test_cli_rejects_out_of_range_weights(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(VALID))
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"fuzzyWeight": 1.0, "cosineWeight": 1.0}))

    code = rank_sections.main(["--input", str(input_path), "--config", str(config_path), "--no-ai"])

    assert code == 1
    assert "must not exceed 1" in capsys.readouterr().err
