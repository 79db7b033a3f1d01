"""LLM access for response fact-checking and translation.

The chatbot under test is a public-services assistant; these prompts ask an
external model to judge its answers or translate them for comparison.
"""

import json
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

try:
    import litellm
    LITELLM_AVAILABLE = True
except ImportError:
    LITELLM_AVAILABLE = False

log = logging.getLogger(__name__)


# =============================================================================
# Structured Output Models
# =============================================================================

class HallucinationVerdict(BaseModel):
    """Fact-check result for one query/response pair."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_hallucinated: bool = Field(
        default=False,
        alias="isHallucinated",
        description="Whether the response contains fabricated or unrelated information",
    )
    confidence: float = Field(
        default=0.0,
        description="Confidence of the verdict between 0.0 and 1.0",
    )
    reason: str = Field(
        default="",
        description="Brief explanation for the verdict",
    )

    @classmethod
    def from_llm_content(cls, content: Optional[str]) -> "HallucinationVerdict":
        """Parse the JSON object returned by the model, tolerating missing keys."""
        data = json.loads(content or "{}")
        return cls(
            is_hallucinated=bool(data.get("isHallucinated") or False),
            confidence=float(data.get("confidence") or 0.0),
            reason=str(data.get("reason") or ""),
        )


# =============================================================================
# LLM Prompts
# =============================================================================

FACT_CHECK_SYSTEM_PROMPT = "You are a fact-checking expert."

HALLUCINATION_PROMPT = """You are an expert fact-checker for UAE government chatbot responses.

Analyze this chatbot conversation:

User Query: {query}
Chatbot Response: {response}

Determine if the chatbot's response contains:
1. Fabricated or made-up information
2. Hallucinated facts or statistics
3. Incorrect information about UAE government services
4. Information not related to the query

Provide your analysis in JSON format:
{{
  "isHallucinated": true/false,
  "confidence": 0.0-1.0,
  "reason": "Brief explanation"
}}"""

TRANSLATE_PROMPT = """Translate the following text from {source} to {target}. Return only the translation, no explanations:

{text}"""


# =============================================================================
# LLM Client
# =============================================================================

class LLMClient:
    """Sends prompts to an OpenAI-compatible model through litellm."""

    def __init__(
        self,
        model: str = "gpt-4",
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.3,
    ):
        if not LITELLM_AVAILABLE:
            raise ImportError(
                "litellm is not installed. Install with: pip install litellm"
            )

        self.model = model
        self.base_url = base_url
        self.api_key = api_key
        self.temperature = temperature

    def _build_kwargs(self, json_output: bool = False, max_tokens: Optional[int] = None) -> dict:
        """Build kwargs dict for litellm.completion calls."""
        model = self.model
        if self.base_url and not model.startswith("openai/"):
            model = f"openai/{model}"

        kwargs = {
            "model": model,
            "api_key": self.api_key,
            "temperature": self.temperature,
        }

        if self.base_url:
            kwargs["api_base"] = self.base_url

        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        return kwargs

    def complete(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        json_output: bool = False,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Execute one completion and return the message content.

        Args:
            user_prompt: User message
            system_prompt: Optional system message
            json_output: Ask the model for a JSON object
            max_tokens: Optional completion length cap

        Returns:
            Content of the first choice ("" if the model returned none)
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = litellm.completion(
            messages=messages,
            **self._build_kwargs(json_output, max_tokens),
        )
        return response.choices[0].message.content or ""

    def fact_check(self, query: str, response: str) -> HallucinationVerdict:
        """Ask the model whether the response is hallucinated. Raises on transport or parse errors."""
        content = self.complete(
            HALLUCINATION_PROMPT.format(query=query, response=response),
            system_prompt=FACT_CHECK_SYSTEM_PROMPT,
            json_output=True,
            max_tokens=500,
        )
        return HallucinationVerdict.from_llm_content(content)

    def translate(self, text: str, source: str, target: str) -> str:
        content = self.complete(
            TRANSLATE_PROMPT.format(source=source, target=target, text=text),
            max_tokens=1000,
        )
        return content.strip()

    @classmethod
    def from_settings(cls, settings) -> Optional["LLMClient"]:
        """Create a client from settings, or None when no API key is configured.

        Raises:
            ImportError: If a key is configured but litellm is unavailable
        """
        if not settings.llm_configured:
            log.warning("OpenAI API key not configured. AI validation features will be limited.")
            return None

        if not LITELLM_AVAILABLE:
            raise ImportError(
                "An LLM API key is configured but litellm is not available. "
                "Install litellm or unset OPENAI_API_KEY."
            )

        log.info("LLM client initialized (%s)", settings.llm_model)
        return cls(
            model=settings.llm_model,
            base_url=settings.llm_url,
            api_key=settings.openai_api_key,
        )
