"""Unit tests for the qmd keyword backend."""

import asyncio
import stat
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "preflight_server"))

from preflight.retrieval.keyword_qmd import QmdKeywordBackend, parse_qmd_files_output


def _fake_qmd(tmp_path, body):
    script = tmp_path / "qmd"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


def test_parse_single_line():
    hits = parse_qmd_files_output("#a1,0.92,qmd://memory/notes/trip.md\n")
    assert len(hits) == 1
    assert hits[0].score == 0.92
    assert hits[0].path == "memory/notes/trip.md"
    assert hits[0].hash == "#a1"


def test_parse_path_with_commas():
    hits = parse_qmd_files_output("#b2,0.5,qmd://memory/people/smith, john.md")
    assert hits[0].path == "memory/people/smith, john.md"


def test_parse_keeps_backend_order():
    out = "#a,0.31,qmd://memory/a.md\n#b,0.88,qmd://memory/b.md\n"
    assert [h.path for h in parse_qmd_files_output(out)] == ["memory/a.md", "memory/b.md"]


def test_parse_skips_malformed_lines():
    out = "garbage\n#c,notanumber,qmd://memory/x.md\n#d,0.7,qmd://memory/ok.md\n"
    hits = parse_qmd_files_output(out)
    assert [h.path for h in hits] == ["memory/ok.md"]


def test_parse_empty_output():
    assert parse_qmd_files_output("") == []
    assert parse_qmd_files_output("\n\n") == []


def test_parse_other_collection_left_alone():
    hits = parse_qmd_files_output("#e,0.4,qmd://docs/readme.md")
    assert hits[0].path == "qmd://docs/readme.md"


def test_search_runs_cli(tmp_path):
    qmd = _fake_qmd(
        tmp_path,
        'printf \'%s\\n\' "$@" > "$(dirname "$0")/args.txt"\n'
        "echo '#a1,0.92,qmd://memory/notes/trip.md'\n"
        "echo '#b2,0.41,qmd://memory/daily/2026-01-02.md'\n",
    )
    backend = QmdKeywordBackend(qmd, timeout=5.0)
    hits = asyncio.run(backend.search('toronto "trip"', 5))

    assert [h.path for h in hits] == ["memory/notes/trip.md", "memory/daily/2026-01-02.md"]
    args = (tmp_path / "args.txt").read_text().splitlines()
    assert args == ["search", 'toronto "trip"', "-n", "5", "--files"]


def test_search_timeout_yields_no_hits(tmp_path):
    qmd = _fake_qmd(tmp_path, "exec sleep 5\n")
    backend = QmdKeywordBackend(qmd, timeout=0.2)
    assert asyncio.run(backend.search("anything", 5)) == []


def test_search_nonzero_exit_yields_no_hits(tmp_path):
    qmd = _fake_qmd(tmp_path, "echo '#a1,0.9,qmd://memory/x.md'\nexit 3\n")
    assert asyncio.run(QmdKeywordBackend(qmd).search("x", 5)) == []


def test_missing_binary_yields_no_hits(tmp_path):
    backend = QmdKeywordBackend(str(tmp_path / "missing-qmd"))
    assert backend.is_available() is False
    assert asyncio.run(backend.search("x", 5)) == []
