"""CLI for the notification RAG engine.

    notigen generate "Order shipped email" --channel email --k 5
    notigen stream "Password reset SMS" --templates templates.json
"""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from notigen.application.dto.generation_dto import GenerationOptions
from notigen.config.composition import Engine, build_engine
from notigen.config.settings import AppSettings
from notigen.domain.errors import DomainError
from notigen.domain.models import SearchFilter, TemplatePayload

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="notigen", description="Grounded notification generation")
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("generate", "Generate a notification and print it with its sources"),
        ("stream", "Generate a notification, printing content as it streams"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("query")
        p.add_argument("--k", type=int, default=5, help="Templates to retrieve")
        p.add_argument("--threshold", type=float, default=0.65, help="Raw score threshold")
        p.add_argument("--channel")
        p.add_argument("--category")
        p.add_argument("--tone")
        p.add_argument("--language")
        p.add_argument("--temperature", type=float, default=0.4)
        p.add_argument("--max-output-tokens", type=int, default=500)
        p.add_argument("--no-cache", action="store_true", help="Bypass the response cache")
        p.add_argument(
            "--templates",
            type=Path,
            help="JSON list of templates to index before generating (memory backend)",
        )
    return parser


def options_from_args(args: argparse.Namespace) -> GenerationOptions:
    flt = SearchFilter(
        channel=args.channel, category=args.category, tone=args.tone, language=args.language
    )
    return GenerationOptions(
        top_k=args.k,
        score_threshold=args.threshold,
        filter=None if flt.is_empty() else flt,
        temperature=args.temperature,
        max_output_tokens=args.max_output_tokens,
        use_cache=not args.no_cache,
    )


def load_templates(path: Path) -> list[TemplatePayload]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    return [TemplatePayload.from_dict(item) for item in raw]


async def index_templates(engine: Engine, templates: Sequence[TemplatePayload]) -> int:
    if not templates:
        return 0
    batch = await engine.embeddings.embed_batch([t.content for t in templates])
    for template, vector in zip(templates, batch.embeddings, strict=True):
        await engine.index.upsert(template.template_id, vector.values, template)
    logger.info("Indexed %d templates (%d embeddings cached)", len(templates), batch.cache_hits)
    return len(templates)


async def _generate(engine: Engine, args: argparse.Namespace) -> None:
    result = await engine.generator.generate(args.query, options_from_args(args))
    print(result.content)
    print()
    print("SOURCES:")
    for s in result.sources:
        print(f"[{s.rank}] {s.id} {s.channel}/{s.category} (score={s.score:.3f})")
    meta = result.metadata
    print(
        f"\n{meta.tokens_used} tokens, ${meta.cost:.6f}, {meta.total_time_ms:.0f}ms"
        f"{' (cached)' if meta.cached else ''}"
    )


async def _stream(engine: Engine, args: argparse.Namespace) -> None:
    async for event in engine.generator.generate_stream(args.query, options_from_args(args)):
        if event.type == "content":
            print(event.data["chunk"], end="", flush=True)
        elif event.type == "complete":
            total_ms = event.data["timings"]["total_ms"]
            print(f"\n\n{event.data['tokens_used']} tokens, {total_ms:.0f}ms")


async def run(args: argparse.Namespace, settings: AppSettings) -> None:
    engine = build_engine(settings)
    if args.templates is not None:
        await index_templates(engine, load_templates(args.templates))
    if args.command == "stream":
        await _stream(engine, args)
    else:
        await _generate(engine, args)
    await engine.generator.wait_for_pending_writes()


def main(argv: Sequence[str] | None = None) -> int:
    settings = AppSettings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run(args, settings))
    except DomainError as ex:
        print(f"\n[ERROR] {type(ex).__name__}: {ex}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
