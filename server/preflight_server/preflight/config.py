"""Centralised configuration for the memory preflight plugin.

All values are read from environment variables with sensible defaults.
Feature flags select which backends take part in the search cascade.
"""

from __future__ import annotations

import os


def _bool_env(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).lower() in ("true", "1", "yes")


def _int_env(name: str, default: int = 0) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float = 0.0) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _path_env(name: str, default: str) -> str:
    return os.path.expanduser(os.getenv(name, default))


# ── Core ─────────────────────────────────────────────────────────────
PREFLIGHT_ENABLED: bool = _bool_env("PREFLIGHT_ENABLED", True)
WORKSPACE_DIR: str = _path_env("WORKSPACE_DIR", "~/.openclaw/workspace")
PREFLIGHT_TIMEOUT_SECONDS: float = _float_env("PREFLIGHT_TIMEOUT_SECONDS", 15.0)

# ── Eligibility ──────────────────────────────────────────────────────
MIN_PROMPT_LENGTH: int = _int_env("MIN_PROMPT_LENGTH", 10)
MIN_CLEANED_LENGTH: int = _int_env("MIN_CLEANED_LENGTH", 3)

# ── Entity extraction (Ollama) ───────────────────────────────────────
OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://127.0.0.1:11434").rstrip("/")
OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "gemma3:4b")
OLLAMA_TIMEOUT_SECONDS: float = _float_env("OLLAMA_TIMEOUT_SECONDS", 10.0)
OLLAMA_NUM_PREDICT: int = _int_env("OLLAMA_NUM_PREDICT", 60)
MAX_ENTITY_RESPONSE_CHARS: int = _int_env("MAX_ENTITY_RESPONSE_CHARS", 300)
STOPWORD_FALLBACK_ENABLED: bool = _bool_env("STOPWORD_FALLBACK_ENABLED", False)
MAX_SEARCH_TERMS: int = _int_env("MAX_SEARCH_TERMS", 3)

# ── Keyword backend (qmd) ────────────────────────────────────────────
KEYWORD_BACKEND: str = os.getenv("KEYWORD_BACKEND", "qmd")  # qmd|none
QMD_PATH: str = _path_env("QMD_PATH", "~/.bun/bin/qmd")
QMD_TIMEOUT_SECONDS: float = _float_env("QMD_TIMEOUT_SECONDS", 5.0)
QMD_COLLECTION_PREFIX: str = os.getenv("QMD_COLLECTION_PREFIX", "qmd://memory/")
QMD_WORKSPACE_PREFIX: str = os.getenv("QMD_WORKSPACE_PREFIX", "memory/")
SEARCH_MAX_RESULTS: int = _int_env("SEARCH_MAX_RESULTS", 5)

# ── Semantic backend ─────────────────────────────────────────────────
SEMANTIC_BACKEND: str = os.getenv("SEMANTIC_BACKEND", "host")  # host|azure|none
SEMANTIC_MIN_SCORE: float = _float_env("SEMANTIC_MIN_SCORE", 0.3)
SEMANTIC_QUERY_MAX_CHARS: int = _int_env("SEMANTIC_QUERY_MAX_CHARS", 200)

# ── Previews ─────────────────────────────────────────────────────────
PREVIEW_READ_BYTES: int = _int_env("PREVIEW_READ_BYTES", 500)
PREVIEW_MAX_CHARS: int = _int_env("PREVIEW_MAX_CHARS", 100)
SEMANTIC_PREVIEW_MAX_CHARS: int = _int_env("SEMANTIC_PREVIEW_MAX_CHARS", 80)

# ── Audit log ────────────────────────────────────────────────────────
SEARCH_LOG_ENABLED: bool = _bool_env("SEARCH_LOG_ENABLED", True)
SEARCH_LOG_PATH: str = _path_env(
    "SEARCH_LOG_PATH",
    os.path.join(WORKSPACE_DIR, "memory", "meta", "search-log.jsonl"),
)
AUDIT_PROMPT_MAX_CHARS: int = _int_env("AUDIT_PROMPT_MAX_CHARS", 200)

# ── Azure AI Search (standalone semantic backend) ────────────────────
AZURE_SEARCH_ENDPOINT: str = os.getenv("AZURE_SEARCH_ENDPOINT", "")
AZURE_SEARCH_API_KEY: str = os.getenv("AZURE_SEARCH_API_KEY", "")
MEMORY_INDEX_NAME: str = os.getenv("MEMORY_INDEX_NAME", "memory-files")
AZURE_OPENAI_ENDPOINT: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
AZURE_OPENAI_API_KEY: str = os.getenv("AZURE_OPENAI_API_KEY", "")
AZURE_OPENAI_EMBED_MODEL: str = os.getenv(
    "AZURE_OPENAI_EMBED_MODEL", "text-embedding-3-large"
)

# ── Observability ────────────────────────────────────────────────────
OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")
