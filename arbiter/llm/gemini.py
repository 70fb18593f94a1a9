"""Gemini (Google) proposer implementation."""

from typing import Optional

from google import genai
from google.genai import types

from arbiter.committee.models import TokenUsage
from arbiter.config import get_settings
from arbiter.llm.base import BaseProposer
from arbiter.llm.models import CompletionResult


class GeminiProposer(BaseProposer):
    """Gemini proposer focused on broad, multi-perspective analysis."""

    agent_id = "gemini"
    agent_name = "Gemini"
    agent_type = "gemini"
    default_temperature = 0.8
    system_prompt = (
        "You are a member of an expert decision committee. Consider the "
        "dispute from several perspectives, weigh each party's evidence and "
        "explain which factors are decisive."
    )

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """Initialize Gemini proposer.

        Args:
            api_key: Google API key. If None, uses config value.
            model: Model to use. If None, uses config value.
        """
        settings = get_settings()
        api_key = api_key or settings.google_api_key
        model = model or settings.default_llm_model_gemini

        if not api_key:
            raise ValueError("Google API key is not configured")

        super().__init__(api_key, model)
        self.client = genai.Client(api_key=self.api_key)

    async def complete(self, prompt: str, temperature: float) -> CompletionResult:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=temperature,
                    max_output_tokens=self.max_tokens,
                ),
            )
        except Exception as e:
            raise Exception(f"Gemini API error: {str(e)}")

        # Check if response was blocked by safety filters
        feedback = getattr(response, "prompt_feedback", None)
        if feedback and getattr(feedback, "block_reason", None):
            raise Exception(f"Gemini blocked response: {feedback.block_reason}")

        if not response.candidates:
            raise Exception("Gemini returned no candidates")

        candidate = response.candidates[0]
        if "SAFETY" in str(getattr(candidate, "finish_reason", "")):
            raise Exception(f"Gemini candidate blocked: {candidate.finish_reason}")

        response_text = response.text
        if not response_text or not response_text.strip():
            raise Exception("Gemini returned empty response")

        usage_metadata = getattr(response, "usage_metadata", None)
        usage = TokenUsage(
            prompt_tokens=getattr(usage_metadata, "prompt_token_count", None) or 0,
            completion_tokens=getattr(usage_metadata, "candidates_token_count", None) or 0,
        )
        return CompletionResult(content=response_text, token_usage=usage, model=self.model)
