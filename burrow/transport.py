"""Model transport over LiteLLM streaming completions.

A transport is any object with a ``stream(entries, tools, model)`` method
returning an iterator of Fragments. The Agent only depends on that method,
so tests drive it with plain generators.
"""

import json
import uuid
from typing import Iterator

from .conversation import MODEL, Entry, Fragment, ToolCall
from .errors import ConfigError, TransportError


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def to_messages(entries) -> list[dict]:
    """Convert history entries to OpenAI-style chat messages.

    A user entry holding tool results becomes one ``tool`` message per
    result, in order. Results without a call id borrow the id of the
    matching call in the preceding model entry.
    """
    messages: list[dict] = []
    last_ids: list[str] = []
    for entry in entries:
        if entry.role == MODEL:
            calls = entry.tool_calls
            # Providers reject an assistant message with neither content nor calls
            msg: dict = {"role": "assistant", "content": entry.text or (None if calls else "")}
            last_ids = [call.id or f"call_{i}" for i, call in enumerate(calls)]
            if calls:
                msg["tool_calls"] = [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.args),
                        },
                    }
                    for call_id, call in zip(last_ids, calls)
                ]
            messages.append(msg)
            continue

        results = entry.tool_results
        for i, part in enumerate(results):
            call_id = part.call.id or (last_ids[i] if i < len(last_ids) else f"call_{i}")
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": json.dumps(part.result.as_dict(), ensure_ascii=False),
                }
            )
        text = entry.text
        if text or not results:
            messages.append({"role": "user", "content": text})
    return messages


def _parse_arguments(raw: str) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw_arguments": raw}
    if not isinstance(parsed, dict):
        return {"_raw_arguments": raw}
    return parsed


class LiteLLMTransport:
    def __init__(self, *, api_key: str | None = None, base_url: str | None = None):
        import litellm

        litellm.suppress_debug_info = True
        self._litellm = litellm
        self.api_key = api_key
        self.base_url = base_url

    def stream(self, entries: tuple[Entry, ...], tools: list, model: str) -> Iterator[Fragment]:
        """Yield text fragments as they arrive, then one fragment with all tool calls."""
        kwargs: dict = dict(model=model, messages=to_messages(entries), stream=True)
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url

        try:
            response = self._litellm.completion(**kwargs)
        except Exception as e:
            raise TransportError(f"LLM call failed: {e}") from e

        pending: dict[int, dict] = {}
        try:
            for chunk in response:
                choices = getattr(chunk, "choices", None)
                if not choices:
                    continue
                delta = choices[0].delta
                if delta is None:
                    continue
                text = getattr(delta, "content", None)
                if text:
                    yield Fragment(text=text)
                for tc in getattr(delta, "tool_calls", None) or []:
                    index = getattr(tc, "index", None)
                    if index is None:
                        index = len(pending)
                    slot = pending.setdefault(index, {"id": None, "name": "", "arguments": ""})
                    if getattr(tc, "id", None):
                        slot["id"] = tc.id
                    fn = getattr(tc, "function", None)
                    if fn is None:
                        continue
                    if fn.name and not slot["name"]:
                        slot["name"] = fn.name
                    if fn.arguments:
                        slot["arguments"] += fn.arguments
        except Exception as e:
            raise TransportError(f"stream error: {e}") from e

        if pending:
            yield Fragment(
                tool_calls=tuple(
                    ToolCall(
                        name=slot["name"],
                        args=_parse_arguments(slot["arguments"]),
                        id=slot["id"] or _new_call_id(),
                    )
                    for _, slot in sorted(pending.items())
                )
            )


def list_models(model: str) -> list[str]:
    """Models LiteLLM knows for the provider of ``model`` (e.g. "gemini/...")."""
    import litellm

    provider = model.split("/", 1)[0] if "/" in model else model
    known = litellm.models_by_provider.get(provider)
    if known is None:
        raise ConfigError(f"unknown provider {provider!r}")
    return sorted(f"{provider}/{name}" for name in known)
