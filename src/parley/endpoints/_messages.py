"""Conversation turns to chat-completions message lists.

Three passes, applied in order by the endpoint:

1. :func:`prepare_messages` maps turns to ``{"role", "content"}`` dicts and
   inlines image attachments as data URIs for multimodal models.
2. :func:`apply_preprompt` guarantees a single leading system message and
   downgrades it to ``user`` for models without a system role.
3. :func:`append_tool_results` replays executed tool calls so the model can
   continue a tool-augmented exchange.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable, Sequence
import json
from typing import TYPE_CHECKING, Any
import uuid

if TYPE_CHECKING:
    from parley.images import ImageProcessor
    from parley.types import EndpointMessage, MessageFile, ToolResult


def _new_tool_call_id() -> str:
    return str(uuid.uuid4())


async def prepare_files(
    image_processor: ImageProcessor, files: Sequence[MessageFile]
) -> list[dict[str, Any]]:
    """Encode the image attachments of one turn as ``image_url`` parts.

    Non-image files are dropped. Output order follows input order.
    """
    processed = await asyncio.gather(
        *(image_processor(f) for f in files if f.is_image)
    )
    return [
        {
            "type": "image_url",
            "image_url": {
                "url": f"data:{p.mime};base64,{base64.b64encode(p.image).decode('ascii')}"
            },
        }
        for p in processed
    ]


async def prepare_messages(
    messages: Sequence[EndpointMessage],
    image_processor: ImageProcessor,
    multimodal: bool,
) -> list[dict[str, Any]]:
    """Map conversation turns to chat messages.

    With *multimodal* set, user turns become a content array of image parts
    followed by one text part. All attachments across all turns are
    processed concurrently.
    """

    async def convert(message: EndpointMessage) -> dict[str, Any]:
        if message.role == "user" and multimodal:
            images = await prepare_files(image_processor, message.files)
            return {
                "role": message.role,
                "content": [*images, {"type": "text", "text": message.content}],
            }
        return {"role": message.role, "content": message.content}

    return list(await asyncio.gather(*(convert(m) for m in messages)))


def apply_preprompt(
    messages: list[dict[str, Any]],
    preprompt: str | None,
    *,
    system_role_supported: bool = True,
) -> list[dict[str, Any]]:
    """Merge *preprompt* into a single leading system message.

    An existing leading system message keeps its content after the
    preprompt, separated by a blank line. Without one, a new system message
    holding the preprompt (or an empty string) is prepended.
    """
    if messages and messages[0].get("role") == "system":
        if preprompt is not None:
            existing = messages[0].get("content") or ""
            messages[0] = {
                **messages[0],
                "content": preprompt + (f"\n\n{existing}" if existing else ""),
            }
    else:
        messages = [{"role": "system", "content": preprompt or ""}, *messages]

    if not system_role_supported and messages[0].get("role") == "system":
        messages[0] = {**messages[0], "role": "user"}
    return messages


def append_tool_results(
    messages: list[dict[str, Any]],
    tool_results: Sequence[ToolResult] | None,
    *,
    id_factory: Callable[[], str] = _new_tool_call_id,
) -> list[dict[str, Any]]:
    """Append the assistant tool-call message and one tool message per result.

    Results without a ``tool_id`` get a fresh id from *id_factory*; the same
    id links the call entry to its tool message.
    """
    if not tool_results:
        return messages

    tool_calls: list[dict[str, Any]] = []
    responses: list[dict[str, Any]] = []
    for result in tool_results:
        call_id = result.call.tool_id or id_factory()
        tool_calls.append(
            {
                "type": "function",
                "function": {
                    "name": result.call.name,
                    "arguments": json.dumps(dict(result.call.parameters)),
                },
                "id": call_id,
            }
        )
        responses.append(
            {
                "role": "tool",
                "content": json.dumps(result.outputs)
                if result.outputs is not None
                else "",
                "tool_call_id": call_id,
            }
        )

    messages.append({"role": "assistant", "content": None, "tool_calls": tool_calls})
    messages.extend(responses)
    return messages
