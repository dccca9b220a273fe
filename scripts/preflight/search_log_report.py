#!/usr/bin/env python3
"""Summarise the preflight search audit log.

Usage:
    python search_log_report.py [LOG_PATH] [--top N]

Defaults to ``SEARCH_LOG_PATH``.  Reports how often the keyword index hit,
how often the semantic fallback was needed, mean latencies, and the paths
hinted most often.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections import Counter
from typing import Iterable

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "preflight_server"))

from dotenv import load_dotenv

load_dotenv()

from preflight import config as cfg
from preflight.models import AuditRecord
from preflight.observability.audit_log import read_records

# Matches both " [SEMANTIC FALLBACK]" and older " [GEMINI FALLBACK]" lines.
FALLBACK_MARKER = "FALLBACK]"


def summarise(records: Iterable[AuditRecord], top: int = 10) -> dict:
    total = 0
    by_backend: Counter = Counter()
    fallbacks = 0
    extract_ms = search_ms = total_ms = 0.0
    paths: Counter = Counter()

    for rec in records:
        total += 1
        by_backend[rec.backend] += 1
        if rec.search_query.endswith(FALLBACK_MARKER):
            fallbacks += 1
        extract_ms += rec.extract_ms
        search_ms += rec.search_ms
        total_ms += rec.total_ms
        paths.update(path for path, _score in rec.results)

    def _mean(value: float) -> float:
        return round(value / total, 1) if total else 0.0

    return {
        "turns": total,
        "keyword_hits": by_backend["keyword"],
        "semantic_hits": by_backend["semantic"],
        "no_hits": by_backend["none"],
        "fallbacks": fallbacks,
        "mean_extract_ms": _mean(extract_ms),
        "mean_search_ms": _mean(search_ms),
        "mean_total_ms": _mean(total_ms),
        "top_paths": paths.most_common(top),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("log_path", nargs="?", default=cfg.SEARCH_LOG_PATH)
    parser.add_argument("--top", type=int, default=10)
    args = parser.parse_args()

    if not os.path.exists(args.log_path):
        print(f"ERROR: no search log at {args.log_path}")
        sys.exit(1)

    report = summarise(read_records(args.log_path), top=args.top)
    turns = report["turns"] or 1
    print(f"Turns searched:   {report['turns']}")
    print(f"Keyword hits:     {report['keyword_hits']} ({100 * report['keyword_hits'] / turns:.0f}%)")
    print(f"Semantic hits:    {report['semantic_hits']} ({100 * report['semantic_hits'] / turns:.0f}%)")
    print(f"No hits:          {report['no_hits']}")
    print(f"Fallbacks:        {report['fallbacks']}")
    print(
        f"Mean latency (ms): extract={report['mean_extract_ms']} "
        f"search={report['mean_search_ms']} total={report['mean_total_ms']}"
    )
    if report["top_paths"]:
        print("\nMost hinted paths:")
        for path, count in report["top_paths"]:
            print(f"  {count:4d}  {path}")


if __name__ == "__main__":
    main()
