"""Boundary to the content-understanding service.

The pipeline only sees :class:`ContentService`: one request in, generated
text plus token usage out. :class:`AG2ContentService` implements it on AG2's
``OpenAIWrapper``, so any endpoint AG2 can talk to (OpenAI, Azure OpenAI,
OpenAI-compatible gateways) works from configuration alone.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Protocol

import autogen

from ..config import build_model_llm_config
from ..errors import ServiceError
from ..models import ImagePart, ProjectConfig, ServiceRequest, ServiceResponse, TextPart

logger = logging.getLogger(__name__)


class ContentService(Protocol):
    """Single opaque request/response operation."""

    async def complete(self, request: ServiceRequest) -> ServiceResponse: ...


def to_openai_messages(request: ServiceRequest) -> list[dict[str, Any]]:
    """Render a request as OpenAI chat messages (text and inline image parts)."""
    content: list[dict[str, Any]] = []
    for part in request.parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            b64 = base64.b64encode(part.data).decode("ascii")
            content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{part.mime_type};base64,{b64}",
                    "detail": part.detail,
                },
            })

    messages: list[dict[str, Any]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    # Text-only requests collapse to a plain string for broader endpoint support.
    if all(c["type"] == "text" for c in content):
        messages.append({"role": "user", "content": "\n\n".join(c["text"] for c in content)})
    else:
        messages.append({"role": "user", "content": content})
    return messages


class AG2ContentService:
    """ContentService backed by ``autogen.OpenAIWrapper``, one client per model."""

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config
        self._clients: dict[str, autogen.OpenAIWrapper] = {}

    def _client(self, model: str) -> autogen.OpenAIWrapper:
        if model not in self._clients:
            self._clients[model] = autogen.OpenAIWrapper(
                **build_model_llm_config(model, self.config)
            )
        return self._clients[model]

    def _create(self, request: ServiceRequest) -> ServiceResponse:
        client = self._client(request.model)
        response = client.create(
            messages=to_openai_messages(request),
            max_tokens=request.max_output_tokens,
            temperature=request.temperature,
        )
        texts = client.extract_text_or_completion_object(response)
        text = texts[0] if texts and isinstance(texts[0], str) else ""
        usage = getattr(response, "usage", None)
        return ServiceResponse(
            text=text or "",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

    async def complete(self, request: ServiceRequest) -> ServiceResponse:
        # OpenAIWrapper.create blocks; keep the event loop free for sibling requests.
        try:
            return await asyncio.to_thread(self._create, request)
        except Exception as e:
            raise ServiceError(f"{request.model} request failed: {e}") from e


async def request_with_timeout(
    service: ContentService,
    request: ServiceRequest,
    timeout: float,
) -> ServiceResponse:
    """Issue *request*, turning a hung call into the same fatal error as a failed one."""
    try:
        return await asyncio.wait_for(service.complete(request), timeout=timeout)
    except asyncio.TimeoutError:
        raise ServiceError(
            f"{request.model} request timed out after {timeout:g}s"
        ) from None
