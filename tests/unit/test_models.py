import pytest
from pydantic_ai.exceptions import UserError
from pydantic_ai.messages import (
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.openai import OpenAIChatModel

from nexusflow.activities import ChatMessage, DefaultActivities, ToolCall
from nexusflow.activities.models import (
    PydanticAIModelClient,
    default_model_factory,
    from_model_response,
    to_model_messages,
)
from nexusflow.agent import AgentLoop
from nexusflow.contracts import RetryPolicy
from nexusflow.errors import ActivityFailure
from nexusflow.utils.retry import is_retryable, retry_async


def test_conversation_converts_to_request_response_pairs():
    messages = [
        ChatMessage(role="system", content="You are helpful"),
        ChatMessage(role="user", content="2+3?"),
        ChatMessage(
            role="assistant",
            tool_calls=[ToolCall(id="c1", name="calc", arguments={"a": 2})],
        ),
        ChatMessage(role="tool", content="5", tool_call_id="c1", tool_name="calc"),
    ]

    converted = to_model_messages(messages)

    assert [type(m) for m in converted] == [ModelRequest, ModelResponse, ModelRequest]
    assert isinstance(converted[0].parts[0], SystemPromptPart)
    assert isinstance(converted[0].parts[1], UserPromptPart)
    call = converted[1].parts[0]
    assert isinstance(call, ToolCallPart)
    assert call.tool_call_id == "c1"
    tool_return = converted[2].parts[0]
    assert isinstance(tool_return, ToolReturnPart)
    assert tool_return.content == "5"


def test_model_response_converts_to_reply():
    reply = from_model_response(
        ModelResponse(
            parts=[
                TextPart(content="Let me check. "),
                ToolCallPart(tool_name="web_search", args={"query": "x"}, tool_call_id="c9"),
            ]
        )
    )
    assert reply.text == "Let me check. "
    assert reply.tool_calls == [ToolCall(id="c9", name="web_search", arguments={"query": "x"})]


def test_default_model_factory_builds_provider_reference():
    assert default_model_factory("openai", "gpt-4o-mini", None) == "openai:gpt-4o-mini"


def test_default_model_factory_uses_secret_as_api_key():
    openai_model = default_model_factory("openai", "gpt-4o", "sk-from-store")
    assert isinstance(openai_model, OpenAIChatModel)
    assert openai_model.model_name == "gpt-4o"
    assert openai_model.client.api_key == "sk-from-store"

    anthropic_model = default_model_factory("anthropic", "claude-sonnet-4-0", "sk-ant")
    assert isinstance(anthropic_model, AnthropicModel)
    assert anthropic_model.client.api_key == "sk-ant"


def test_default_model_factory_rejects_secret_for_unsupported_provider():
    with pytest.raises(ActivityFailure) as excinfo:
        default_model_factory("bedrock", "titan", "secret")
    assert not is_retryable(excinfo.value)


@pytest.mark.asyncio
async def test_model_configuration_errors_are_not_retried():
    factory_calls = []

    def broken_factory(provider, model, secret):
        factory_calls.append(provider)
        raise UserError(f"Unknown model: {provider}:{model}")

    client = PydanticAIModelClient(model_factory=broken_factory)
    messages = [ChatMessage(role="user", content="hi")]

    with pytest.raises(ActivityFailure) as excinfo:
        await retry_async(
            lambda: client("nope", "x", messages, []),
            RetryPolicy(max_attempts=3, backoff_base=0, backoff_jitter=0),
        )

    assert "Unknown model" in str(excinfo.value)
    assert factory_calls == ["nope"]


@pytest.mark.asyncio
async def test_agent_loop_with_pydantic_ai_function_model():
    seen_tools = []

    def model_fn(messages, info: AgentInfo) -> ModelResponse:
        seen_tools.append([tool.name for tool in info.function_tools])
        if len(messages) == 1:
            return ModelResponse(
                parts=[
                    ToolCallPart(
                        tool_name="calc",
                        args={"operation": "add", "a": 2, "b": 3},
                        tool_call_id="c1",
                    )
                ]
            )
        tool_return = messages[-1].parts[-1]
        return ModelResponse(parts=[TextPart(content=f"The answer is {tool_return.content}")])

    client = PydanticAIModelClient(
        model_factory=lambda provider, model, secret: FunctionModel(model_fn)
    )
    loop = AgentLoop(DefaultActivities(model_client=client))

    result = await loop.run(
        provider="test",
        model="function",
        system_prompt="You are helpful",
        user_prompt="What is 2 + 3?",
        tools=["calc"],
    )

    assert result.answer == "The answer is 5"
    assert result.iterations == 2
    assert result.tool_calls == 1
    assert seen_tools == [["calc"], ["calc"]]
