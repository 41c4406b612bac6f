"""
LLM client used for selector discovery and page enrichment.

Every call asks for a single JSON object. Responses are parsed defensively:
markdown fences are stripped, a direct parse is attempted and then the
first {...} block. Any failure becomes an LLMResponse with an error instead
of an exception.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import anthropic

from site_extractor.config import config
from site_extractor.utils.logger import LayerLogger


SYSTEM_PROMPT = """You are a precise web data extraction assistant.

ABSOLUTE RULES:
• Answer with ONE valid JSON object and nothing else
• Never invent values that are not present in the supplied HTML
• Use null for anything you cannot find
• Never use external knowledge"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")


@dataclass
class LLMResponse:
    """Parsed JSON object, or the reason there is none."""
    data: Optional[Dict[str, Any]] = None
    raw_text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None


def parse_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Extract a single JSON object from an LLM answer. None when there is none."""
    if not text or not text.strip():
        return None

    candidates = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    candidates.append(text.strip())
    block = _OBJECT_BLOCK.search(text)
    if block:
        candidates.append(block.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


class LLMClient:
    """
    Claude API client.

    Temperature=0 for deterministic output. A missing API key disables the
    client; callers check is_available() and skip LLM stages.
    """

    def __init__(
        self,
        api_key: Optional[str] = config.CLAUDE_API_KEY,
        model: str = config.LLM_MODEL,
        max_tokens: int = config.LLM_MAX_TOKENS,
        timeout: float = config.LLM_TIMEOUT,
    ):
        self.logger = LayerLogger("llm_client")
        self.model = model
        self.max_tokens = max_tokens

        if not api_key:
            self.logger.log_error("CLAUDE_API_KEY not found in environment", error_type="config")
            self.client = None
        else:
            self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
            self.logger.log_action("init", "completed", model=self.model)

    def is_available(self) -> bool:
        """Check if the client is properly configured."""
        return self.client is not None

    async def complete_json(self, prompt: str, purpose: str = "completion") -> LLMResponse:
        if not self.client:
            return LLMResponse(error="LLM client is not configured")

        self.logger.log_action(purpose, "started", prompt_length=len(prompt))
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            self.logger.log_error(f"Claude API error: {str(e)}", error_type="api_error", purpose=purpose)
            return LLMResponse(error=f"LLM request failed: {e}")

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        data = parse_json_object(text)
        if data is None:
            self.logger.log_error(
                "LLM response was not a JSON object",
                error_type="parse_failure",
                purpose=purpose,
                preview=text[:200],
            )
            return LLMResponse(raw_text=text, error="LLM response could not be parsed as a JSON object")

        self.logger.log_action(
            purpose,
            "completed",
            keys=list(data.keys()),
            tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return LLMResponse(data=data, raw_text=text)
