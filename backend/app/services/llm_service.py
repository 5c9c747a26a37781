"""
LLM service for an OpenAI-compatible endpoint (OpenRouter by default) with structured output
"""
import logging
import json
from typing import Type, TypeVar, Optional

from openai import OpenAI
from pydantic import BaseModel, ValidationError as PydanticValidationError

from app.config import Settings, settings as default_settings
from app.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    content = content.strip()
    if content.startswith("```json"):
        content = content.replace("```json", "").replace("```", "").strip()
    elif content.startswith("```"):
        content = content.replace("```", "").strip()
    return content


class LLMService:
    """Chat and structured (pydantic-validated) completions with a bounded timeout.

    Every failure mode surfaces as UpstreamError so callers have a single
    exception to absorb.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        settings = settings or default_settings
        self.client = client or OpenAI(
            base_url=settings.LLM_BASE_URL,
            api_key=settings.OPENROUTER_API_KEY or "not-configured",
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=1,
        )
        self.model = settings.LLM_MODEL
        logger.info(f"✅ Initialized LLM service ({self.model} via {settings.LLM_BASE_URL})")

    def chat_completion(
        self,
        messages: list,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None
    ) -> str:
        """Basic chat completion"""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"❌ Error in chat completion: {e}")
            raise UpstreamError(f"chat completion failed: {e}") from e
        if not content:
            raise UpstreamError("chat completion returned no content")
        return content

    def structured_output(
        self,
        messages: list,
        response_model: Type[T],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None
    ) -> T:
        """
        Ask for a JSON object matching response_model and validate it.
        Uses JSON mode plus the model's JSON schema in the system prompt.
        """
        schema = response_model.model_json_schema()
        field_descriptions = []
        for field_name, field_info in schema.get("properties", {}).items():
            desc = field_info.get("description", "")
            if desc:
                field_descriptions.append(f"- {field_name}: {desc}")

        system_message = {
            "role": "system",
            "content": f"""You generate structured JSON responses.

Model: {response_model.__name__}
Description: {response_model.__doc__ or ""}

Field Requirements:
{chr(10).join(field_descriptions)}

Schema JSON:
{json.dumps(schema, indent=2)}

IMPORTANT:
- Return ONLY valid JSON, no markdown, no code blocks, no explanations
- Follow the schema EXACTLY"""
        }
        # The schema must reach the provider even when the caller brings its own system prompt
        if messages and messages[0].get("role") == "system":
            merged = {
                "role": "system",
                "content": f"{messages[0]['content']}\n\n{system_message['content']}",
            }
            messages = [merged] + list(messages[1:])
        else:
            messages = [system_message] + list(messages)

        content = None
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or 2000,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"❌ Error in structured output request: {e}")
            raise UpstreamError(f"structured output request failed: {e}") from e

        if not content:
            raise UpstreamError("structured output returned no content")

        try:
            data = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            logger.error(f"❌ JSON decode error: {e}")
            logger.error(f"Response content: {content[:1000]}")
            raise UpstreamError(f"unparsable JSON from provider: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError(f"expected a JSON object, got {type(data).__name__}")

        try:
            return response_model(**data)
        except PydanticValidationError as e:
            logger.error(f"❌ Schema mismatch for {response_model.__name__}: {e}")
            raise UpstreamError(f"schema mismatch for {response_model.__name__}") from e
