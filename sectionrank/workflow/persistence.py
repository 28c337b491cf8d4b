from __future__ import annotations

import datetime as dt
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from sectionrank.logging_config import get_logger
from sectionrank.utils.types import DocumentStructure, DocumentSummary, Element

logger = get_logger(__name__)

ANALYZER_VERSION = "sectionrank-structure-v1"


def utc_timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def structure_document(filename: str, structure: DocumentStructure, search_index: Sequence[Element]) -> dict:
    """Serializable form of one analyzed document."""
    return {
        "filename": filename,
        "title": structure.title or "Untitled Document",
        "structure": asdict(structure),
        "searchIndex": [asdict(element) for element in search_index],
        "metadata": {
            "total_elements": structure.total_elements,
            "text_elements": structure.text_elements,
            "section_headers": structure.section_headers,
            "titles": structure.titles,
            "generatedAt": utc_timestamp(),
            "analyzer": ANALYZER_VERSION,
        },
    }


def save_structure(output_dir: Path, filename: str, structure: DocumentStructure, search_index: Sequence[Element]) -> Path:
    path = write_json(Path(output_dir) / f"{filename}.json", structure_document(filename, structure, search_index))
    logger.info("Persisted structure | doc=%s path=%s sections=%s", filename, path, len(structure.sections))
    return path


def save_summaries(path: Path, summaries: Sequence[DocumentSummary]) -> Path:
    written = write_json(Path(path), [asdict(summary) for summary in summaries])
    logger.info("Persisted summaries | path=%s count=%s", written, len(summaries))
    return written


__all__ = ["ANALYZER_VERSION", "save_structure", "save_summaries", "structure_document", "utc_timestamp", "write_json"]
