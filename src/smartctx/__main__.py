"""Entry point: python -m smartctx <command>

- init:             Create the context tree
- validate:         Report missing directories and conflicting files
- repair:           Recreate missing directories
- stats:            Tree and index counts
- query <prompt>:   Print the instructions a prompt would be enhanced with
- learn <prompt>:   Extract insights from a prompt and store them
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from smartctx.config import load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_service():
    config = load_config()
    _setup_logging(config.log_level)

    from smartctx.service import SmartContextService

    return SmartContextService.from_config(config, Path.cwd())


def _run_init() -> int:
    service = _build_service()
    result = service.store.tree.initialize_tree()
    print(f"Context tree: {result.context_path}")
    print(
        f"  created {result.categories_created} categories, "
        f"{result.subcategories_created} subcategories"
    )
    for error in result.errors:
        print(f"  error: {error}")
    return 0 if result.success else 1


def _run_validate() -> int:
    service = _build_service()
    validation = service.store.tree.validate_tree()
    print(f"Context tree: {validation.context_path}")
    print(f"  valid: {validation.is_valid}")
    for path in validation.missing_directories:
        print(f"  missing: {path}")
    for path in validation.invalid_files:
        print(f"  conflicting file: {path}")
    return 0 if validation.is_valid else 1


def _run_repair() -> int:
    service = _build_service()
    ok = service.store.tree.repair_tree()
    print("Repaired." if ok else "Repair incomplete; conflicting files need manual resolution.")
    return 0 if ok else 1


def _run_stats() -> int:
    service = _build_service()
    service.store.initialize()
    tree = service.store.tree.stats()
    store = service.store.stats()
    print(f"Context tree: {service.store.root}")
    print(f"  categories: {tree.categories}, subcategories: {tree.subcategories}")
    print(f"  files: {tree.total_files}")
    for category, count in tree.files_by_category.items():
        print(f"    {category}: {count}")
    print(
        f"Index: {store.total_chunks} chunks, {store.keywords} keywords, "
        f"{store.categories} buckets, {store.recent_chunks} recent"
    )
    return 0


async def _query(prompt: str) -> int:
    service = _build_service()
    result = await service.enhance_instructions("", prompt)
    print(f"# {result.context_summary}")
    if result.error:
        print(f"# error: {result.error}")
    if result.chunks_used:
        print(result.enhanced_instructions.strip())
    return 0 if result.success else 1


async def _learn(prompt: str) -> int:
    service = _build_service()
    result = await service.store_from_prompt(prompt)
    if result.task:
        chunks = await result.task
        for chunk in chunks:
            print(f"stored {chunk.id}: {chunk.content}")
    if result.error:
        print(f"error: {result.error}")
    return 0 if result.error is None else 1


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    arg = " ".join(sys.argv[2:])

    if cmd == "init":
        code = _run_init()
    elif cmd == "validate":
        code = _run_validate()
    elif cmd == "repair":
        code = _run_repair()
    elif cmd == "stats":
        code = _run_stats()
    elif cmd == "query" and arg:
        code = asyncio.run(_query(arg))
    elif cmd == "learn" and arg:
        code = asyncio.run(_learn(arg))
    else:
        print("Usage: python -m smartctx [init|validate|repair|stats|query <prompt>|learn <prompt>]")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
