# =============================================
# File: kitchen_dss/services/gateway.py
# Purpose: Send a prompt to a local LLM server, trying known endpoint shapes in order
# =============================================
from __future__ import annotations
import asyncio
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from kitchen_dss.errors import AllEndpointsFailedError
from kitchen_dss.utils.prompting import build_prompt
from kitchen_dss.utils.sanitize import safe_url

DEFAULT_BASE_URL = os.getenv("DSS_BASE_URL", "http://localhost:11434")
DEFAULT_MODEL = os.getenv("DSS_LLM_MODEL", "llama3.2")
TEMPERATURE = float(os.getenv("DSS_LLM_TEMPERATURE", "0.4"))
TOP_P = float(os.getenv("DSS_LLM_TOP_P", "0.9"))
NUM_PREDICT = int(os.getenv("DSS_LLM_NUM_PREDICT", "1024"))
TIMEOUT_S = float(os.getenv("DSS_LLM_TIMEOUT_SECONDS", "30"))

NATIVE_PATHS: Tuple[str, ...] = ("/api/generate", "/api/chat", "/api/completions")
OPENAI_PATHS: Tuple[str, ...] = ("/v1/chat/completions", "/v1/completions")
_CHAT_PATHS = {"/api/chat", "/v1/chat/completions"}


def _openai_paths_enabled() -> bool:
    return os.getenv("DSS_LLM_OPENAI_PATHS", "0").strip().lower() in ("1", "true", "yes")


def default_paths() -> List[str]:
    paths = list(NATIVE_PATHS)
    if _openai_paths_enabled():
        paths.extend(OPENAI_PATHS)
    return paths


# ---------------------------------------------------------------------
# Response shapes, tried in order; first structural match wins
# ---------------------------------------------------------------------

class _GenerateShape(BaseModel):
    response: str


class _MessageBody(BaseModel):
    content: str


class _ChatShape(BaseModel):
    message: _MessageBody


class _TextChoice(BaseModel):
    text: str


class _CompletionShape(BaseModel):
    choices: List[_TextChoice] = Field(..., min_length=1)


class _MessageChoice(BaseModel):
    message: _MessageBody


class _ChatCompletionShape(BaseModel):
    choices: List[_MessageChoice] = Field(..., min_length=1)


_RESPONSE_SHAPES: List[Tuple[Type[BaseModel], Callable[[Any], str]]] = [
    (_GenerateShape, lambda m: m.response),
    (_ChatShape, lambda m: m.message.content),
    (_CompletionShape, lambda m: m.choices[0].text),
    (_ChatCompletionShape, lambda m: m.choices[0].message.content),
]


def extract_text(payload: Any) -> Optional[str]:
    """Return the generated text from a known response shape, or None."""
    for shape, get_text in _RESPONSE_SHAPES:
        try:
            parsed = shape.model_validate(payload)
        except ValidationError:
            continue
        text = get_text(parsed)
        if text and text.strip():
            return text
    return None


# ---------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------

class ModelGateway:
    """
    Tries each candidate endpoint once, in order, and returns the first
    usable text. Transport errors never leave this class: total failure is
    reported as AllEndpointsFailedError.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        paths: Optional[Sequence[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model = model or DEFAULT_MODEL
        self.timeout_s = TIMEOUT_S if timeout_s is None else float(timeout_s)
        self.paths = list(paths) if paths is not None else default_paths()
        self._transport = transport

    def candidates(self, base_url: str) -> List[str]:
        base = safe_url(base_url)
        return [f"{base}{p}" for p in self.paths] if base else []

    def _body(self, path: str, prompt: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "temperature": TEMPERATURE,
            "top_p": TOP_P,
            "num_predict": NUM_PREDICT,
        }
        if path in _CHAT_PATHS:
            body["messages"] = [{"role": "user", "content": prompt}]
        if path.startswith("/v1/"):
            body["max_tokens"] = NUM_PREDICT
        return body

    async def _attempt(self, client: httpx.AsyncClient, url: str, path: str, prompt: str) -> Tuple[Optional[str], str]:
        """One request against one candidate -> (text, '') or (None, reason)."""
        try:
            resp = await asyncio.wait_for(client.post(url, json=self._body(path, prompt)), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            return None, f"timeout after {self.timeout_s:g}s"
        except httpx.HTTPError as e:
            return None, f"transport error: {e.__class__.__name__}: {e}"

        if not resp.is_success:
            return None, f"HTTP {resp.status_code}"
        try:
            payload = resp.json()
        except ValueError:
            return None, "response body is not JSON"
        text = extract_text(payload)
        if text is None:
            return None, "unrecognized response shape"
        return text, ""

    async def complete(self, prompt: str, base_url: Optional[str] = None) -> str:
        """Send an already-built prompt; raise AllEndpointsFailedError if nothing answers."""
        raw_base = base_url or DEFAULT_BASE_URL
        base = safe_url(raw_base)
        if not base:
            logger.warning(f"[gateway] invalid base url {raw_base!r}")
            raise AllEndpointsFailedError(raw_base, [(p, "invalid base url") for p in self.paths])

        attempts: List[Tuple[str, str]] = []
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            for path in self.paths:
                url = f"{base}{path}"
                logger.info(f"[gateway] attempting {url}")
                text, reason = await self._attempt(client, url, path, prompt)
                if text is not None:
                    logger.info(f"[gateway] success from {url}")
                    return text
                logger.warning(f"[gateway] {url} failed: {reason}")
                attempts.append((url, reason))

        logger.error(f"[gateway] all {len(attempts)} endpoints failed at {base}")
        raise AllEndpointsFailedError(base, attempts)

    async def query(self, context: str, identity: str, base_url: Optional[str] = None) -> str:
        """Wrap the assembled context with the manager persona and send it."""
        return await self.complete(build_prompt(context, identity), base_url)
