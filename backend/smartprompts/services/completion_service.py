"""
Prompt rewriting through the OpenAI chat completions API.
"""
import json
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from ..core.config import settings
from ..schemas.optimize import OptimizationResult

logger = logging.getLogger(__name__)


SYSTEM_PROMPT_TEMPLATE = """You are an expert AI prompt engineer. Your task is to optimize prompts for clarity, effectiveness, and token efficiency.

Analyze the given prompt and:
1. Improve clarity and specificity
2. Add relevant context or constraints if needed
3. Optimize for the target model ({model})
4. Reduce unnecessary verbosity while maintaining intent
5. Ensure the prompt follows best practices

Provide your response as a JSON object with:
- "optimized": the improved prompt
- "improvements": array of key changes made
- "tokensEstimate": estimated token count"""


class CompletionError(Exception):
    """The completion API could not produce a result."""


class PromptOptimizer:
    """Wraps the OpenAI client used to rewrite prompts."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            if not settings.openai_api_key:
                raise CompletionError("OpenAI is not configured")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.openai_timeout_seconds,
            )
        return self._client

    @staticmethod
    def build_messages(prompt: str, model: str, context: str = "") -> list:
        if context:
            user_prompt = f"Context: {context}\n\nPrompt to optimize: {prompt}"
        else:
            user_prompt = f"Prompt to optimize: {prompt}"
        return [
            {"role": "system", "content": SYSTEM_PROMPT_TEMPLATE.format(model=model)},
            {"role": "user", "content": user_prompt},
        ]

    async def optimize_prompt(
        self,
        prompt: str,
        model: Optional[str] = None,
        context: Optional[str] = None,
    ) -> OptimizationResult:
        """
        Rewrite ``prompt`` for ``model``.

        Raises:
            CompletionError: client not configured, API failure or a reply
                that is not a JSON object.
        """
        target_model = model or settings.openai_default_target_model
        messages = self.build_messages(prompt, target_model, context or "")

        try:
            completion = await self.client.chat.completions.create(
                model=settings.openai_model,
                messages=messages,
                temperature=settings.openai_temperature,
                response_format={"type": "json_object"},
            )
            content = completion.choices[0].message.content or "{}"
            result = json.loads(content)
        except CompletionError:
            raise
        except (OpenAIError, json.JSONDecodeError, IndexError) as e:
            logger.error(f"OpenAI API error: {e}")
            raise CompletionError(f"Failed to optimize prompt: {e}") from e

        if not isinstance(result, dict):
            raise CompletionError("Failed to optimize prompt: completion was not a JSON object")

        improvements = result.get("improvements") or []
        if not isinstance(improvements, list):
            improvements = [str(improvements)]

        try:
            tokens_estimate = int(result.get("tokensEstimate") or 0)
        except (TypeError, ValueError):
            tokens_estimate = 0

        try:
            return OptimizationResult(
                original=prompt,
                optimized=result.get("optimized") or prompt,
                improvements=[str(item) for item in improvements],
                tokens_estimate=tokens_estimate,
            )
        except ValidationError as e:
            logger.error(f"OpenAI returned an unusable optimization: {e}")
            raise CompletionError(f"Failed to optimize prompt: malformed completion: {e}") from e


# Global prompt optimizer instance
prompt_optimizer = PromptOptimizer()
