#!/usr/bin/env python3
"""Replay prompts through the preflight pipeline and print the hint blocks.

Usage:
    python replay.py [--dry-run] < prompts.txt

Reads prompts from stdin, one per line.  A line may also be a JSON object
with a ``prompt`` key (e.g. an exported search log).  With ``--dry-run``
only normalization and term extraction run; no backend is searched and
nothing is appended to the audit log.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "preflight_server"))

from dotenv import load_dotenv

load_dotenv()

from preflight.intake.normalizer import normalize
from preflight.models import Skip, Turn
from preflight.observability.tracing import configure_logging
from preflight.orchestrator import PreflightOrchestrator


def _prompt_from_line(line: str) -> str:
    if line.startswith("{"):
        try:
            data = json.loads(line)
        except ValueError:
            return line
        if isinstance(data, dict):
            return str(data.get("prompt", ""))
    return line


async def replay(dry_run: bool = False) -> None:
    orchestrator = PreflightOrchestrator.from_config()
    augmented = 0
    skipped = 0

    try:
        for line in sys.stdin:
            line = line.strip()
            if not line:
                continue
            prompt = _prompt_from_line(line)
            print(f"> {prompt[:80]}")

            if dry_run:
                normalized = normalize(prompt)
                if isinstance(normalized, Skip):
                    print(f"  [dry-run] skip: {normalized.reason}")
                    skipped += 1
                    continue
                terms = await orchestrator.extractor.extract(normalized.text)
                if terms is None:
                    print("  [dry-run] extractor unavailable")
                else:
                    print(f"  [dry-run] {terms.provenance}: {terms.raw!r} -> {terms.query!r}")
                continue

            result = await orchestrator.run(Turn(prompt=prompt, session_key="replay"))
            if result.augmented:
                augmented += 1
                print(result.context)
            else:
                skipped += 1
                print(f"  (no hints: {result.reason})")
    finally:
        await orchestrator.close()

    print(f"\nReplay complete: augmented={augmented} skipped={skipped}")


if __name__ == "__main__":
    configure_logging()
    dr = "--dry-run" in sys.argv
    asyncio.run(replay(dry_run=dr))
