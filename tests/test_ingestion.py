import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from sectionrank.workflow.ingestion import PdfIngestion


def test_missing_pdf_is_rejected(tmp_path):
    with pytest.raises(FileNotFoundError):
        PdfIngestion.validate_pdf(tmp_path / "missing.pdf")


def test_directory_and_wrong_type_are_rejected(tmp_path):
    folder = tmp_path / "folder.pdf"
    folder.mkdir()
    with pytest.raises(ValueError, match="Expected a file"):
        PdfIngestion.validate_pdf(folder)

    notes = tmp_path / "notes.txt"
    notes.write_text("plain text")
    with pytest.raises(ValueError, match="Unsupported MIME type"):
        PdfIngestion.validate_pdf(notes)


def test_oversized_pdf_is_rejected(tmp_path, monkeypatch):
    big = tmp_path / "big.pdf"
    big.write_bytes(b"%PDF-1.4\n" + b"0" * 4096)
    monkeypatch.setattr(PdfIngestion, "max_file_size_mb", 0.001)

    with pytest.raises(ValueError, match="exceeds"):
        PdfIngestion.validate_pdf(big)


def test_valid_pdf_path_is_returned(tmp_path):
    small = tmp_path / "small.pdf"
    small.write_bytes(b"%PDF-1.4\n")

    assert PdfIngestion.validate_pdf(small) == small


def test_file_grown_past_limit_after_validation_is_rejected(tmp_path, monkeypatch):
    path = tmp_path / "growing.pdf"
    path.write_bytes(b"%PDF-1.4\n")
    monkeypatch.setattr(PdfIngestion, "max_file_size_mb", 0.001)
    assert PdfIngestion.validate_pdf(path) == path

    path.write_bytes(b"%PDF-1.4\n" + b"0" * 4096)

    with pytest.raises(ValueError, match="exceeds"):
        PdfIngestion.validate_pdf(path)
