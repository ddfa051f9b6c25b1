"""OpenAI-compatible endpoint: request assembly and dispatch."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
import logging
from typing import TYPE_CHECKING, Any

from parley.config import EndpointSettings, parse_settings
from parley.endpoints._messages import (
    append_tool_results,
    apply_preprompt,
    prepare_messages,
)
from parley.endpoints._request import (
    ChatCompletionRequest,
    CompletionRequest,
    OpenAIRequest,
    build_chat_request,
    build_completion_request,
)
from parley.endpoints._streams import (
    chat_completion_to_text_generation_single,
    chat_stream_to_text_generation,
    completion_stream_to_text_generation,
)
from parley.endpoints._tools import compile_tools
from parley.errors import APIError, CapabilityError, ConfigurationError
from parley.images import make_image_processor
from parley.prompt import build_prompt

if TYPE_CHECKING:
    import httpx

    from parley.endpoints.base import EndpointContext
    from parley.images import ImageProcessor
    from parley.types import TextGenerationStreamOutput

log = logging.getLogger(__name__)

CONVERSATION_ID_HEADER = "ChatUI-Conversation-ID"
USER_ID_HEADER = "ChatUI-User-Id"
USER_EMAIL_HEADER = "ChatUI-User-Email"
USE_CACHE_HEADER = "X-use-cache"

PromptBuilder = Callable[..., str]


def diagnostic_headers(context: EndpointContext) -> dict[str, str]:
    """Headers attached to every request for server-side correlation."""
    return {
        CONVERSATION_ID_HEADER: str(context.conversation_id or ""),
        USER_ID_HEADER: str(context.user_id or ""),
        USER_EMAIL_HEADER: context.user_email or "",
        USE_CACHE_HEADER: "false",
    }


def _create_client(
    settings: EndpointSettings, http_client: httpx.AsyncClient | None
) -> Any:
    try:
        from openai import AsyncOpenAI
    except ImportError as e:
        raise APIError(
            "Failed to import OpenAI",
            hint="pip install openai",
            provider="openai",
            phase="client",
        ) from e
    return AsyncOpenAI(
        api_key=settings.api_key.get_secret_value(),
        base_url=settings.base_url,
        default_headers=settings.default_headers,
        default_query=settings.default_query,
        http_client=http_client,
    )


class OpenAIEndpoint:
    """Async callable serving one OpenAI-compatible endpoint.

    The wire dialect is fixed at construction from ``settings.completion``;
    each call builds a request of that variant, dispatches it and returns
    the normalized output stream.
    """

    def __init__(
        self,
        settings: EndpointSettings,
        *,
        prompt_builder: PromptBuilder = build_prompt,
        image_processor: ImageProcessor | None = None,
        http_client: httpx.AsyncClient | None = None,
        client: Any = None,
    ) -> None:
        """Validate the mode against the model and build the transport client.

        Raises:
            CapabilityError: If the legacy mode is used with a tool-calling model.
            ConfigurationError: If the completion mode is unknown.
            APIError: If the OpenAI SDK cannot be imported.
        """
        self.settings = settings
        self.model = settings.model

        if settings.completion == "completions":
            if self.model.tools:
                raise CapabilityError(
                    "Tools are not supported for 'completions' mode, "
                    "switch to 'chat_completions' instead",
                    hint="Set completion='chat_completions' or tools=False on the model.",
                )
            self._build_request = self._build_completion_request
        elif settings.completion == "chat_completions":
            self._build_request = self._build_chat_request
        else:
            raise ConfigurationError(
                f"Invalid completion type: {settings.completion!r}",
                hint="Use 'completions' or 'chat_completions'.",
            )

        self._prompt_builder = prompt_builder
        self._image_processor = image_processor or make_image_processor(
            settings.multimodal.image
        )
        self._client = client if client is not None else _create_client(settings, http_client)

    @property
    def weight(self) -> int:
        """Relative share of traffic when several endpoints serve one model."""
        return self.settings.weight

    @property
    def multimodal(self) -> bool:
        """Whether user turns carry image content parts."""
        return self.model.multimodal and not self.model.tools

    async def __call__(
        self, context: EndpointContext
    ) -> AsyncIterator[TextGenerationStreamOutput]:
        """Build, dispatch and normalize one generation request."""
        request = await self.build_request(context)
        return await self.dispatch(request, context)

    async def build_request(self, context: EndpointContext) -> OpenAIRequest:
        """Assemble the request body for *context* without sending it."""
        return await self._build_request(context)

    async def _build_completion_request(self, context: EndpointContext) -> CompletionRequest:
        prompt = self._prompt_builder(
            context.messages,
            continue_message=context.continue_message,
            preprompt=context.preprompt,
            model=self.model,
        )
        return build_completion_request(self.model, prompt, context.generate_settings)

    async def _build_chat_request(self, context: EndpointContext) -> ChatCompletionRequest:
        tools = compile_tools(context.tools)
        messages = await prepare_messages(
            context.messages, self._image_processor, self.multimodal
        )
        messages = apply_preprompt(
            messages,
            context.preprompt,
            system_role_supported=self.model.system_role_supported,
        )
        messages = append_tool_results(messages, context.tool_results)
        return build_chat_request(
            self.model,
            messages,
            context.generate_settings,
            tools,
            stream=self.settings.streaming_supported,
            use_completion_tokens=self.settings.use_completion_tokens,
        )

    async def dispatch(
        self, request: OpenAIRequest, context: EndpointContext
    ) -> AsyncIterator[TextGenerationStreamOutput]:
        """Send *request* and wrap the reply.

        ``extra_body`` is handed to the SDK separately, which merges it over
        the JSON body with its keys winning. Transport errors propagate as
        raised by the SDK.
        """
        body = request.body()
        options: dict[str, Any] = {
            "extra_headers": diagnostic_headers(context),
            "extra_body": self.settings.extra_body,
        }

        if isinstance(request, CompletionRequest):
            log.debug("openai completions request: model=%s stream=True", request.model)
            reply = await self._client.completions.create(**body, **options)
            return completion_stream_to_text_generation(reply)

        log.debug(
            "openai chat request: model=%s messages=%d tools=%d stream=%s",
            request.model,
            len(request.messages),
            len(request.tools or ()),
            request.stream,
        )
        reply = await self._client.chat.completions.create(**body, **options)
        if request.stream:
            return chat_stream_to_text_generation(reply)
        return chat_completion_to_text_generation_single(reply)

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        try:
            await client.close()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            log.warning("OpenAI client cleanup failed: %s", exc)


def endpoint_openai(
    settings: EndpointSettings | Mapping[str, Any] | None = None,
    /,
    *,
    prompt_builder: PromptBuilder = build_prompt,
    image_processor: ImageProcessor | None = None,
    http_client: httpx.AsyncClient | None = None,
    **fields: Any,
) -> OpenAIEndpoint:
    """Create an endpoint from settings or keyword fields.

    Example:
        endpoint = endpoint_openai(model={"name": "gpt-4o-mini"})
        stream = await endpoint(EndpointContext(messages=[...], preprompt="Be nice"))
        async for update in stream:
            print(update.token.text, end="")

    Raises:
        ConfigurationError: If the settings fail validation.
        CapabilityError: If tools are requested in the legacy mode.
    """
    if settings is not None and fields:
        raise ConfigurationError(
            "Pass endpoint settings either positionally or as keywords, not both",
            hint="endpoint_openai(EndpointSettings(...)) or endpoint_openai(model=...)",
        )
    validated = parse_settings(settings if settings is not None else fields)
    return OpenAIEndpoint(
        validated,
        prompt_builder=prompt_builder,
        image_processor=image_processor,
        http_client=http_client,
    )
