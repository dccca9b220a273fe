import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import BaseModel, Field

load_dotenv()

from preflight import config as preflight_config
from preflight.models import Turn
from preflight.observability.tracing import configure_logging, get_metrics, init_otel
from preflight.plugin import MemoryPreflightPlugin

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup/shutdown lifecycle."""
    init_otel()
    plugin.start()
    yield
    await plugin.stop()


app = FastAPI(lifespan=lifespan)

# --- Data Models ---

class BeforeAgentStartEvent(BaseModel):
    prompt: Optional[str] = None
    sessionKey: str = ""


class PreflightResponse(BaseModel):
    prependContext: Optional[str] = Field(default=None)

# --- Service Composition ---

# The sidecar has no host tool to borrow, so the semantic fallback comes
# from configuration alone (SEMANTIC_BACKEND=azure|none).
plugin = MemoryPreflightPlugin()
print(
    f"Memory preflight ready (keyword={preflight_config.KEYWORD_BACKEND}, "
    f"semantic={preflight_config.SEMANTIC_BACKEND}, log={preflight_config.SEARCH_LOG_PATH})"
)

# --- Health Checks ---

@app.get("/")
async def read_root():
    orchestrator = plugin.orchestrator
    keyword = orchestrator.cascade.keyword
    return {
        "Hello": "Memory Preflight",
        "Ollama Healthy": await orchestrator.extractor.ping(),
        "QMD Available": bool(keyword is not None and keyword.is_available()),
        "Search Log": preflight_config.SEARCH_LOG_PATH,
        "Search Log Exists": os.path.exists(preflight_config.SEARCH_LOG_PATH),
    }


@app.get("/metrics")
async def metrics():
    return get_metrics()

# --- Endpoints: Host hook ---

@app.post("/before-agent-start", response_model=PreflightResponse, response_model_exclude_none=True)
async def before_agent_start(event: BeforeAgentStartEvent):
    result = await plugin.preflight(Turn(prompt=event.prompt or "", session_key=event.sessionKey))
    return PreflightResponse(prependContext=result.context if result.augmented else None)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8787")))
