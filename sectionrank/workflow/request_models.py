from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class DocumentRef(BaseModel):
    filename: str = Field(..., description="PDF file name, resolved against the PDF directory")
    title: Optional[str] = Field(None, description="Optional display title")


class Persona(BaseModel):
    role: str = Field(..., description="Who the ranking is for")


class JobToBeDone(BaseModel):
    task: str = Field(..., description="What the persona is trying to accomplish")


class PipelineInput(BaseModel):
    documents: List[DocumentRef] = Field(..., description="Documents to analyze, in output order")
    persona: Persona
    job_to_be_done: JobToBeDone


def parse_input(data: Any) -> PipelineInput:
    """Validate a decoded input document; raises ``ValueError('Invalid input: ...')``."""
    if not isinstance(data, dict):
        raise ValueError("Invalid input: expected a JSON object")
    if not isinstance(data.get("documents"), list):
        raise ValueError("Invalid input: documents array is required")
    persona = data.get("persona")
    if not isinstance(persona, dict) or not persona.get("role"):
        raise ValueError("Invalid input: persona.role is required")
    job = data.get("job_to_be_done")
    if not isinstance(job, dict) or not job.get("task"):
        raise ValueError("Invalid input: job_to_be_done.task is required")
    for position, document in enumerate(data["documents"], start=1):
        if not isinstance(document, dict) or not document.get("filename"):
            raise ValueError(f"Invalid input: documents[{position}].filename is required")
    # pydantic's ValidationError subclasses ValueError, so type errors surface the same way.
    return PipelineInput.model_validate(data)


def load_input(path: Path) -> PipelineInput:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Failed to load input from {path}: file not found") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to load input from {path}: {exc}") from exc
    return parse_input(data)


__all__ = ["DocumentRef", "JobToBeDone", "Persona", "PipelineInput", "load_input", "parse_input"]
