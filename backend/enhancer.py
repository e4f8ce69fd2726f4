"""
Task enhancement through the Anthropic Messages API.

TaskEnhancer.enhance() either returns an EnhancementResult produced by the
model or raises EnrichmentFault. Falling back to the raw title is the
caller's job.
"""
import asyncio
import json
from typing import Optional

import anthropic
import structlog

from config import (
    ANTHROPIC_API_KEY,
    ENHANCE_MAX_TOKENS,
    ENHANCE_MODEL,
    ENHANCE_TIMEOUT_SECONDS,
)
from exceptions import EnrichmentFault
from models import EnhancementResult
from prompts import ENHANCE_PROMPT, ENHANCE_USER_MESSAGE

log = structlog.get_logger(__name__)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```) if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]  # Remove last line (```)
        text = "\n".join(lines)
    return text


def parse_enhancement(text: str, original_title: str) -> EnhancementResult:
    """Parse the model's JSON reply, filling gaps from the original title."""
    try:
        parsed = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise EnrichmentFault("Failed to parse enhancement response") from e
    if not isinstance(parsed, dict):
        raise EnrichmentFault("Enhancement response is not a JSON object")

    title = parsed.get("title")
    if not isinstance(title, str) or not title.strip():
        title = original_title
    description = parsed.get("description")
    if not isinstance(description, str):
        description = ""
    steps = parsed.get("steps")
    if not isinstance(steps, list):
        steps = []

    return EnhancementResult(
        title=title.strip(),
        description=description.strip(),
        steps=[str(step).strip() for step in steps if str(step).strip()],
        enhanced_by="AI",
    )


class TaskEnhancer:
    """Rewrites a task title into a clearer title, a description and steps."""

    def __init__(
        self,
        client: Optional[anthropic.AsyncAnthropic] = None,
        api_key: Optional[str] = ANTHROPIC_API_KEY,
        model: str = ENHANCE_MODEL,
        timeout: float = ENHANCE_TIMEOUT_SECONDS,
        max_tokens: int = ENHANCE_MAX_TOKENS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        if client is None and self.configured:
            client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "your-api-key-here"

    async def enhance(self, title: str) -> EnhancementResult:
        if self.client is None:
            raise EnrichmentFault("API key not configured")

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=ENHANCE_PROMPT,
                    messages=[{"role": "user", "content": ENHANCE_USER_MESSAGE.format(title=title)}],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise EnrichmentFault(f"Enhancement timed out after {self.timeout}s") from e
        except anthropic.APIError as e:
            raise EnrichmentFault(f"API error: {e}") from e

        if not response.content:
            raise EnrichmentFault("Empty enhancement response")
        ai_text = response.content[0].text
        log.debug("enhancement_response", model=self.model, text=ai_text)
        return parse_enhancement(ai_text, title)
