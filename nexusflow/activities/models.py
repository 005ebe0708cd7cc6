"""Model invocation through pydantic-ai's direct request API."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic_ai.direct import model_request
from pydantic_ai.exceptions import UserError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from ..errors import ActivityFailure
from .base import ChatMessage, ModelReply, ToolCall, ToolSpec

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str, str, Optional[str]], Union[Model, str]]


def _openai_model(model: str, secret: str) -> Model:
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openai import OpenAIProvider

    return OpenAIChatModel(model, provider=OpenAIProvider(api_key=secret))


def _anthropic_model(model: str, secret: str) -> Model:
    from pydantic_ai.models.anthropic import AnthropicModel
    from pydantic_ai.providers.anthropic import AnthropicProvider

    return AnthropicModel(model, provider=AnthropicProvider(api_key=secret))


def _groq_model(model: str, secret: str) -> Model:
    from pydantic_ai.models.groq import GroqModel
    from pydantic_ai.providers.groq import GroqProvider

    return GroqModel(model, provider=GroqProvider(api_key=secret))


def _mistral_model(model: str, secret: str) -> Model:
    from pydantic_ai.models.mistral import MistralModel
    from pydantic_ai.providers.mistral import MistralProvider

    return MistralModel(model, provider=MistralProvider(api_key=secret))


_KEYED_MODELS: Dict[str, Callable[[str, str], Model]] = {
    "openai": _openai_model,
    "anthropic": _anthropic_model,
    "groq": _groq_model,
    "mistral": _mistral_model,
}


def default_model_factory(
    provider: str, model: str, secret: Optional[str]
) -> Union[Model, str]:
    """Build the pydantic-ai model for ``provider``/``model``.

    With a secret, the provider client is created with it as API key.
    Without one, ``provider:model`` is left to pydantic-ai's model
    inference, which reads the provider's standard environment variable.

    Raises:
        ActivityFailure: If a secret is given for a provider that cannot
            take an explicit API key (not retryable).
    """
    if not secret:
        return f"{provider}:{model}"
    try:
        build = _KEYED_MODELS[provider.lower()]
    except KeyError:
        raise ActivityFailure(
            f"Provider {provider} does not accept an explicit API key; "
            f"supported: {', '.join(sorted(_KEYED_MODELS))}",
            retryable=False,
        ) from None
    return build(model, secret)


def to_model_messages(messages: List[ChatMessage]) -> List[ModelMessage]:
    """Convert a neutral conversation into pydantic-ai request/response messages."""
    converted: List[ModelMessage] = []
    pending: List[ModelRequestPart] = []

    for message in messages:
        if message.role == "system":
            pending.append(SystemPromptPart(content=message.content))
        elif message.role == "user":
            pending.append(UserPromptPart(content=message.content))
        elif message.role == "tool":
            pending.append(
                ToolReturnPart(
                    tool_name=message.tool_name or "",
                    content=message.content,
                    tool_call_id=message.tool_call_id or "",
                )
            )
        else:
            if pending:
                converted.append(ModelRequest(parts=pending))
                pending = []
            parts: List[Any] = []
            if message.content:
                parts.append(TextPart(content=message.content))
            for call in message.tool_calls:
                parts.append(
                    ToolCallPart(
                        tool_name=call.name, args=call.arguments, tool_call_id=call.id
                    )
                )
            converted.append(ModelResponse(parts=parts))

    if pending:
        converted.append(ModelRequest(parts=pending))
    return converted


def from_model_response(response: ModelResponse) -> ModelReply:
    texts: List[str] = []
    calls: List[ToolCall] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            texts.append(part.content)
        elif isinstance(part, ToolCallPart):
            calls.append(
                ToolCall(
                    id=part.tool_call_id,
                    name=part.tool_name,
                    arguments=part.args_as_dict(),
                )
            )
    return ModelReply(text="".join(texts), tool_calls=calls)


class PydanticAIModelClient:
    """Invoke chat models with pydantic-ai and bound tool definitions."""

    def __init__(self, model_factory: Optional[ModelFactory] = None) -> None:
        self._model_factory = model_factory or default_model_factory

    async def __call__(
        self,
        provider: str,
        model: str,
        messages: List[ChatMessage],
        tools: List[ToolSpec],
        *,
        secret: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> ModelReply:
        parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters_json_schema=tool.parameters_schema,
                )
                for tool in tools
            ]
        )
        logger.debug(
            f"Invoking model {provider}:{model} with {len(messages)} messages and {len(tools)} tools"
        )
        try:
            response = await model_request(
                self._model_factory(provider, model, secret),
                to_model_messages(messages),
                model_settings=settings or None,
                model_request_parameters=parameters,
            )
        except UserError as exc:
            raise ActivityFailure(
                f"Model {provider}:{model} is misconfigured: {exc}", retryable=False
            ) from exc
        return from_model_response(response)
