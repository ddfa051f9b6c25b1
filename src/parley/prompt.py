"""Prompt flattening for the legacy completions mode."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parley.types import EndpointMessage, ModelConfig

_IM_START = "<|im_start|>"
_IM_END = "<|im_end|>"


def render_chatml(
    *,
    messages: Sequence[EndpointMessage],
    preprompt: str | None = None,
    continue_message: bool = False,
) -> str:
    """Render a conversation with the ChatML turn markers.

    When *continue_message* is set and the last turn is from the assistant,
    that turn is left open so the model keeps writing it instead of
    starting a new one.
    """
    chunks: list[str] = []
    if preprompt and not (messages and messages[0].role == "system"):
        chunks.append(f"{_IM_START}system\n{preprompt}{_IM_END}\n")
    for message in messages:
        chunks.append(f"{_IM_START}{message.role}\n{message.content}{_IM_END}\n")

    if continue_message and messages and messages[-1].role == "assistant":
        chunks[-1] = chunks[-1].removesuffix(f"{_IM_END}\n")
    else:
        chunks.append(f"{_IM_START}assistant\n")
    return "".join(chunks)


def build_prompt(
    messages: Sequence[EndpointMessage],
    *,
    continue_message: bool = False,
    preprompt: str | None = None,
    model: ModelConfig,
) -> str:
    """Flatten *messages* into a single prompt string for *model*.

    A leading system turn is replaced by *preprompt* when one is given. When
    continuing a message, trailing stop sequences from the model's default
    parameters are trimmed so generation resumes mid-turn.
    """
    turns = list(messages)
    if turns and turns[0].role == "system" and preprompt is not None:
        turns[0] = replace(turns[0], content=preprompt)

    render = model.prompt_renderer or render_chatml
    prompt = str(
        render(messages=turns, preprompt=preprompt, continue_message=continue_message)
    )

    stop = model.parameters.get("stop")
    if continue_message and stop:
        if isinstance(stop, str):
            stop = [stop]
        prompt = trim_stop_sequences(prompt, [s for s in stop if s])
    return prompt


def trim_stop_sequences(prompt: str, stop: Sequence[str]) -> str:
    """Strip trailing whitespace and stop sequences until neither remains.

    Sequences may be stacked in any order, e.g. ``"...<|im_end|></s>"``.
    """
    prompt = prompt.rstrip()
    trimmed = True
    while trimmed:
        trimmed = False
        for sequence in stop:
            if prompt.endswith(sequence):
                prompt = prompt[: -len(sequence)].rstrip()
                trimmed = True
    return prompt
