from __future__ import annotations

from pathlib import Path
from dotenv import load_dotenv
import os
from langchain_openai import ChatOpenAI

from .config import settings
from .errors import UpstreamError

# Load environment variables from .env
env_path = Path('.') / '.env'
load_dotenv(dotenv_path=env_path)

LLM_PROVIDER = "openai"
DEFAULT_LLM_MODEL = "gpt-4o"

_clients: dict[str, ChatOpenAI] = {}


def narrative_map_model() -> str:
    """NARRATIVE_MAP_MODEL from the environment, else settings, else the default."""
    return (os.getenv("NARRATIVE_MAP_MODEL") or "").strip() or settings.NARRATIVE_MAP_MODEL or DEFAULT_LLM_MODEL


def _api_key() -> str:
    key = (os.getenv("OPENAI_API_KEY") or settings.OPENAI_API_KEY or "").strip()
    if not key:
        raise UpstreamError("OPENAI_API_KEY not configured")
    return key


def get_llm_client() -> ChatOpenAI:
    """Chat model for narrative map generation; built on first use and cached per model."""
    model_name = narrative_map_model()
    client = _clients.get(model_name)
    if client is None:
        client = ChatOpenAI(
            model=model_name,
            temperature=settings.NARRATIVE_MAP_TEMPERATURE,
            max_tokens=settings.NARRATIVE_MAP_MAX_TOKENS,
            api_key=_api_key(),
        )
        _clients[model_name] = client
    return client


def model_name_of(client) -> str | None:
    """Best-effort model label for usage logs (works for ChatOpenAI and test doubles)."""
    for attr in ("model_name", "model"):
        value = getattr(client, attr, None)
        if isinstance(value, str) and value:
            return value
    return None
