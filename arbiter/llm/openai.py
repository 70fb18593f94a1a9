"""OpenAI proposer implementation."""

from typing import Optional

from openai import AsyncOpenAI

from arbiter.committee.models import TokenUsage
from arbiter.config import get_settings
from arbiter.llm.base import BaseProposer
from arbiter.llm.models import CompletionResult


class OpenAIProposer(BaseProposer):
    """OpenAI proposer focused on structured, analytical reasoning."""

    agent_id = "openai"
    agent_name = "GPT"
    agent_type = "openai"
    default_temperature = 0.7
    system_prompt = (
        "You are an expert arbitrator on a decision committee. Analyze both "
        "parties' positions methodically, cite the evidence that drives your "
        "conclusion and quantify your confidence."
    )

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize OpenAI proposer.

        Args:
            api_key: OpenAI API key. If None, uses config value.
            model: Model to use. If None, uses config value.
        """
        settings = get_settings()
        api_key = api_key or settings.openai_api_key
        model = model or settings.default_llm_model_openai

        if not api_key:
            raise ValueError("OpenAI API key is not configured")

        super().__init__(api_key, model)
        self.client = AsyncOpenAI(api_key=self.api_key)

    async def complete(self, prompt: str, temperature: float) -> CompletionResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=temperature,
                max_completion_tokens=self.max_tokens,
            )
        except Exception as e:
            raise Exception(f"OpenAI API error: {str(e)}")

        message = response.choices[0].message

        # Check for refusal
        if getattr(message, "refusal", None):
            raise Exception(f"OpenAI refused to respond: {message.refusal}")

        if not message.content:
            raise Exception("OpenAI returned empty response")

        usage = TokenUsage(
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        return CompletionResult(content=message.content, token_usage=usage, model=self.model)
