"""Claude (Anthropic) proposer implementation."""

from typing import Optional

from anthropic import AsyncAnthropic

from arbiter.committee.models import TokenUsage
from arbiter.config import get_settings
from arbiter.llm.base import BaseProposer
from arbiter.llm.models import CompletionResult


class ClaudeProposer(BaseProposer):
    """Claude proposer focused on principled, evidence-weighted reasoning."""

    agent_id = "claude"
    agent_name = "Claude"
    agent_type = "claude"
    default_temperature = 0.6
    system_prompt = (
        "You are Claude, serving as an expert committee member evaluating a "
        "contract dispute. Emphasize fairness, systematic consideration of "
        "evidence, clear reasoning chains and honest acknowledgement of "
        "uncertainty."
    )

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize Claude proposer.

        Args:
            api_key: Anthropic API key. If None, uses config value.
            model: Model to use. If None, uses config value.
        """
        settings = get_settings()
        api_key = api_key or settings.anthropic_api_key
        model = model or settings.default_llm_model_claude

        if not api_key:
            raise ValueError("Anthropic API key is not configured")

        super().__init__(api_key, model)
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def complete(self, prompt: str, temperature: float) -> CompletionResult:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise Exception(f"Claude API error: {str(e)}")

        response_text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens if response.usage else 0,
            completion_tokens=response.usage.output_tokens if response.usage else 0,
        )
        return CompletionResult(content=response_text, token_usage=usage, model=self.model)
