"""
LLM Client

Thin wrapper over any OpenAI-compatible chat completions endpoint.
Both entry points make one retry with stricter instructions before giving up.
"""
import json
import logging
import re
from typing import List, Optional, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ...config import LLM_API_KEY, LLM_BASE_URL, LLM_MODEL

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_WRAPPING_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*([\s\S]*?)\s*```\s*$")


def strip_code_fences(text: str) -> str:
    if not text:
        return ""
    match = _WRAPPING_FENCE_RE.match(text)
    return match.group(1).strip() if match else text.strip()


def extract_json_span(text: str) -> Optional[str]:
    """First balanced top-level JSON object or array in ``text``."""
    positions = [(text.find(open_ch), open_ch, close_ch) for open_ch, close_ch in (("{", "}"), ("[", "]"))]
    positions = [p for p in positions if p[0] != -1]
    if not positions:
        return None

    start, open_ch, close_ch = min(positions)
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def json_candidates(raw_text: str) -> List[str]:
    """Strings worth trying with json.loads, most likely first, deduplicated."""
    text = (raw_text or "").strip()
    if not text:
        return []

    candidates = []
    fenced = _FENCE_RE.findall(text)
    if fenced:
        candidates.append(fenced[0])
    candidates.append(text)
    span = extract_json_span(text)
    if span:
        candidates.append(span)
    if text.lower().startswith("json"):
        # Some models prefix the object with a bare "json" label
        trimmed = text[4:].lstrip(": \n\r\t")
        candidates.append(trimmed)
        span = extract_json_span(trimmed)
        if span:
            candidates.append(span)

    unique = []
    for candidate in candidates:
        candidate = candidate.strip()
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique


class LLMClient:
    """Chat-completions client for document drafting."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model_name = model_name or LLM_MODEL
        self.client = client or AsyncOpenAI(
            base_url=base_url or LLM_BASE_URL,
            api_key=api_key or LLM_API_KEY or "missing",
        )

    def _temperature_kwargs(self, temperature: Optional[float]) -> dict:
        # gpt-5 models reject non-default temperatures
        if temperature is None or self.model_name.lower().startswith("gpt-5"):
            return {}
        return {"temperature": temperature}

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: Optional[float]) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **self._temperature_kwargs(temperature),
        )
        if not getattr(response, "choices", None):
            raise ValueError(f"Provider returned no output for model {self.model_name}")
        return response.choices[0].message.content or ""

    async def generate_structured(self, system_prompt: str, user_prompt: str, response_schema: Type[T]) -> T:
        """Generate a response parsed into ``response_schema``."""
        schema_json = json.dumps(response_schema.model_json_schema())
        base_prompt = (
            f"{system_prompt}\n\n"
            "Respond with ONLY valid JSON matching this JSON Schema, with no markdown "
            f"fences or commentary.\n\nSCHEMA:\n{schema_json}"
        )
        prompts = [
            base_prompt,
            f"{base_prompt}\n\nYour previous answer could not be parsed. Return a single JSON value only.",
        ]

        for attempt, prompt in enumerate(prompts, start=1):
            logger.info(f"[LLM] Structured request to {self.model_name} (attempt {attempt}/{len(prompts)})")
            text = await self._complete(prompt, user_prompt, 0.2 if attempt == 1 else 0)

            errors = []
            for candidate in json_candidates(text):
                try:
                    return response_schema.model_validate(json.loads(candidate, strict=False))
                except (json.JSONDecodeError, ValidationError) as e:
                    errors.append(str(e))

            message = "Unparseable structured response: " + " | ".join(errors[:3] or ["empty content"])
            if attempt == len(prompts):
                logger.error(f"[LLM] {message}")
                raise ValueError(message)
            logger.warning(f"[LLM] {message}. Retrying...")

        raise RuntimeError("unreachable")

    async def generate_text(self, system_prompt: str, user_prompt: str, temperature: float = 0.3) -> str:
        """Generate plain text, with wrapping code fences removed."""
        prompts = [
            system_prompt,
            f"{system_prompt}\n\nReturn only the final document text.",
        ]
        for attempt, prompt in enumerate(prompts, start=1):
            logger.info(f"[LLM] Text request to {self.model_name} (attempt {attempt}/{len(prompts)})")
            text = strip_code_fences(await self._complete(prompt, user_prompt, temperature if attempt == 1 else 0))
            if text:
                return text
            if attempt == len(prompts):
                raise ValueError(f"Model {self.model_name} returned empty content")
            logger.warning("[LLM] Empty text response. Retrying...")

        raise RuntimeError("unreachable")
