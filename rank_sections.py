from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from sectionrank.logging_config import get_logger
from sectionrank.utils.env import env_bool, load_env
from sectionrank.utils.settings import MatchingConfig, PipelinePaths, judge_settings_from_env
from sectionrank.workflow.core import RankingPipeline
from sectionrank.workflow.llm import RelevanceJudge
from sectionrank.workflow.pdf_ocr import Ocr
from sectionrank.workflow.request_models import load_input

logger = get_logger("rank_sections")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = PipelinePaths()
    parser = argparse.ArgumentParser(description="Rank PDF sections against persona-driven topics.")
    parser.add_argument("--input", type=Path, default=defaults.input, help="Input JSON with documents, persona and job_to_be_done")
    parser.add_argument("--pdf-dir", type=Path, default=defaults.pdf_dir, help="Directory holding the input PDFs")
    parser.add_argument("--output", type=Path, default=defaults.final_output, help="Final ranked output JSON")
    parser.add_argument("--summaries", type=Path, default=defaults.summaries, help="Per-document summaries JSON")
    parser.add_argument("--parsed-dir", type=Path, default=defaults.parsed_dir, help="Directory for per-document structure JSON")
    parser.add_argument("--config", type=Path, help="Optional JSON file with matching options (camelCase or snake_case)")
    parser.add_argument("--lang", default="eng", help="Language for Tesseract")
    parser.add_argument("--dpi", type=int, default=200, help="DPI for PDF rendering")
    parser.add_argument("--no-ai", action="store_true", default=env_bool("SECTIONRANK_NO_AI"), help="Skip the relevance judge entirely")
    parser.add_argument("--embeddings", action="store_true", help="Use sentence-transformers similarity instead of term vectors")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_env()
    args = parse_args(argv)

    try:
        request = load_input(args.input)
        options = json.loads(args.config.read_text(encoding="utf-8")) if args.config else {}
        if not isinstance(options, dict):
            raise ValueError(f"Invalid config in {args.config}: expected a JSON object")
        if args.no_ai:
            options["ai_enhanced_mode"] = False
        config = MatchingConfig.from_settings(options)
    except (ValueError, OSError) as exc:
        logger.error("Invalid input | error=%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    vector = None
    if args.embeddings:
        from sectionrank.workflow.vectorizer import EmbeddingSimilarity

        vector = EmbeddingSimilarity()

    judge = None if args.no_ai else RelevanceJudge.from_settings(judge_settings_from_env())
    paths = PipelinePaths(
        input=args.input,
        pdf_dir=args.pdf_dir,
        final_output=args.output,
        summaries=args.summaries,
        parsed_dir=args.parsed_dir,
    )
    pipeline = RankingPipeline(Ocr(lang=args.lang, dpi=args.dpi), judge=judge, config=config, paths=paths, vector=vector)
    output = asyncio.run(pipeline.run(request))

    metadata = output["metadata"]
    print(
        json.dumps(
            {
                "documents": metadata["statistics"]["documents_processed"],
                "matches": metadata["total_matches"],
                "topics": metadata["ranked_topics"],
                "output": str(args.output),
                "seconds": metadata["processing_time_seconds"],
            },
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
