"""
AI Service — Multi-provider AI (OpenAI GPT, Anthropic Claude) narrative over the manager context.

The model only ever sees `format_context_for_ai()` output, so connection facts
come from the canonical resolver and no third-party analytics values are sent.
"""

import logging
from typing import Optional
from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

from ghoste_manager.config import Settings
from ghoste_manager.errors import NotConfiguredError
from ghoste_manager.schemas import ManagerContext
from ghoste_manager.services.context_aggregator import format_context_for_ai

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are Ghoste AI, the marketing manager for an independent music artist.
You help them grow streams and fans with Meta ads, smart links and one-click links.

You are given the artist's CURRENT account state as context. It includes:
Meta connection status, campaigns with their latest performance grade,
smart links, uploaded creatives, recent link-click tracking, suggested
opportunities and any data gaps.

CRITICAL RULES:
- The META ADS STATUS section is the single source of truth for whether Meta
  is connected. Never contradict it. If it says NO, tell the artist to connect
  Meta before talking about launching ads.
- If assets are incomplete, name the exact missing items.
- If a DATA GAPS section is present, say that part of the data could not be
  loaded instead of assuming it is empty.
- Never invent numbers that are not in the context.
- You only recommend. Budget and status changes are approved by the artist.

Respond in short, friendly markdown:
1. **Where things stand** (2-3 sentences)
2. **Top 3 next moves**, most impactful first, each one line with the reason."""


def _parse_model_id(model_id: Optional[str], default_model: str) -> tuple[str, str]:
    """Parse 'provider:model' into (provider, model). Fallback to OpenAI config."""
    if model_id and ":" in model_id:
        p, m = model_id.split(":", 1)
        return (p.strip().lower(), m.strip())
    return ("openai", default_model)


class AIService:
    """Multi-provider AI service for manager insights (OpenAI GPT, Anthropic Claude)."""

    def __init__(
        self,
        settings: Settings,
        model_id: Optional[str] = None,
    ):
        self.provider, self.model = _parse_model_id(model_id, settings.openai_model)
        self._openai_client: Optional[AsyncOpenAI] = None
        self._anthropic_client: Optional[AsyncAnthropic] = None

        if self.provider == "openai":
            if not settings.openai_api_key:
                raise NotConfiguredError("AI insights are not configured (OPENAI_API_KEY missing).")
            self._openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        elif self.provider == "anthropic":
            if not settings.anthropic_api_key:
                raise NotConfiguredError("AI insights are not configured (ANTHROPIC_API_KEY missing).")
            self._anthropic_client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        else:
            raise NotConfiguredError(f"Unknown AI provider: {self.provider}")

    async def _completion(
        self,
        messages: list[dict],
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> str:
        """Call the appropriate provider's completion API."""
        if self.provider == "openai":
            response = await self._openai_client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""

        # Anthropic: system prompt goes in its own field
        system = ""
        anthropic_messages = []
        for m in messages:
            role = m.get("role", "user")
            content = m.get("content", "")
            if role == "system":
                system += content + "\n\n" if content else ""
            else:
                anthropic_messages.append({"role": "user" if role == "user" else "assistant", "content": content})

        response = await self._anthropic_client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system.strip(),
            messages=anthropic_messages,
        )
        if response.content and response.content[0].type == "text":
            return response.content[0].text
        return ""

    async def summarize_context(self, context: ManagerContext, question: Optional[str] = None) -> str:
        """Narrative read of the manager context, optionally answering a question."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": format_context_for_ai(context)},
            {"role": "user", "content": question or "What should I focus on next?"},
        ]
        try:
            return await self._completion(messages)
        except Exception as e:
            logger.error(f"AI insights generation failed ({self.provider}): {type(e).__name__}")
            raise


def create_ai_service(settings: Settings, model_id: Optional[str] = None) -> AIService:
    """Factory function to create an AI service instance. Keys come from Settings."""
    return AIService(settings=settings, model_id=model_id)
