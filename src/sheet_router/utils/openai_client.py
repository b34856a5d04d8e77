"""OpenAI-compatible API client for external model integration."""

import asyncio
import json
import uuid
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..exceptions import ProviderError
from ..models.plan import ToolCall, ToolCallingResult
from .config import RouterConfig, get_config
from .json_utils import extract_json_object
from .llm import canonicalize_command
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class ChatMessage(BaseModel):
    """Message format for chat completions."""
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    """Request format for chat completions."""
    model: str
    messages: List[ChatMessage]
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    stream: bool = False
    tools: Optional[List[Dict[str, Any]]] = None
    response_format: Optional[Dict[str, Any]] = None


class OpenAICompatibleClient:
    """Client for any endpoint speaking the OpenAI chat/embeddings API.

    Implements ``TextGenerator``, ``StructuredGenerator``,
    ``ToolCallingGenerator`` and ``EmbeddingProvider``.
    """

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self.api_key = api_key or self.config.llm_api_key
        self.base_url = base_url or self.config.llm_base_url
        self.model = model or self.config.llm_model
        self.timeout = self.config.llm_timeout_seconds

        if not self.api_key:
            raise ValueError("LLM API key is required")

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a chat completion request."""
        if request_id is None:
            request_id = str(uuid.uuid4())[:8]

        model = model or self.model
        temperature = temperature if temperature is not None else self.config.llm_temperature
        max_tokens = max_tokens if max_tokens is not None else self.config.llm_max_tokens

        request = ChatCompletionRequest(
            model=model,
            messages=[ChatMessage(**msg) for msg in messages],
            temperature=temperature,
            max_tokens=max_tokens,
            tools=tools,
            response_format=response_format,
        )

        logger.info(f"🤖 [LLM Request {request_id}] Model: {model}, Temperature: {temperature}, Messages: {len(messages)}, Tools: {len(tools or [])}")
        for i, msg in enumerate(messages):
            logger.debug(f"🤖 [LLM Request {request_id}] Message {i+1} [{msg.get('role', 'unknown')}] ({len(msg.get('content', ''))} chars)")

        try:
            start_time = asyncio.get_event_loop().time()

            response = await self.client.post(
                "/chat/completions",
                json=request.model_dump(exclude_none=True)
            )
            response.raise_for_status()

            response_time = asyncio.get_event_loop().time() - start_time
            response_data = response.json()

            logger.info(f"🤖 [LLM Response {request_id}] Time: {response_time:.2f}s, Status: {response.status_code}")
            if 'usage' in response_data:
                usage = response_data['usage']
                logger.info(f"🤖 [LLM Usage {request_id}] Prompt: {usage.get('prompt_tokens', 'N/A')}, Completion: {usage.get('completion_tokens', 'N/A')}, Total: {usage.get('total_tokens', 'N/A')} tokens")
            if not response_data.get('choices'):
                logger.warning(f"🤖 [LLM Response {request_id}] No choices in response")

            return response_data

        except httpx.HTTPStatusError as e:
            logger.error(f"❌ [LLM Error {request_id}] HTTP {e.response.status_code}: {e.response.text}")
            raise ProviderError("Chat completion failed", detail=e.response.text, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ [LLM Error {request_id}] Request failed: {type(e).__name__}: {e}")
            raise ProviderError("Chat completion failed", detail=str(e)) from e

    async def get_embeddings(
        self,
        texts: List[str],
        model: Optional[str] = None
    ) -> List[List[float]]:
        """Get text embeddings."""
        model = model or self.config.embedding_model
        logger.info(f"🔤 [Embeddings Request] Model: {model}, Texts: {len(texts)}")

        try:
            response = await self.client.post(
                "/embeddings",
                json={"model": model, "input": texts}
            )
            response.raise_for_status()
            result = response.json()

            embeddings = [item["embedding"] for item in result["data"]]
            logger.info(f"🔤 [Embeddings Response] Generated {len(embeddings)} embeddings, dimension: {len(embeddings[0]) if embeddings else 0}")
            return embeddings

        except httpx.HTTPStatusError as e:
            logger.error(f"❌ [Embeddings Error] HTTP {e.response.status_code}: {e.response.text}")
            raise ProviderError("Embedding request failed", detail=e.response.text, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ [Embeddings Error] Request failed: {e}")
            raise ProviderError("Embedding request failed", detail=str(e)) from e

    # Protocol adapters

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.chat_completion(messages, temperature=temperature)
        return self._first_message(response).get("content") or ""

    async def generate_structured(self, schema: Type[T], prompt: str) -> T:
        schema_json = json.dumps(schema.model_json_schema(by_alias=True))
        messages = [
            {"role": "system", "content": f"Respond with a single JSON object matching this JSON schema:\n{schema_json}"},
            {"role": "user", "content": prompt},
        ]
        model = self.config.evaluator_model or self.model
        response = await self.chat_completion(
            messages,
            model=model,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        content = self._first_message(response).get("content") or ""
        try:
            return schema.model_validate(extract_json_object(content))
        except (ValueError, ValidationError) as e:
            raise ProviderError("Structured response did not match schema", detail=str(e)) from e

    async def generate_with_tools(
        self,
        prompt: str,
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> ToolCallingResult:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.chat_completion(messages, tools=tools)
        message = self._first_message(response)
        tool_calls = []
        for call in message.get("tool_calls") or []:
            function = call.get("function", {})
            try:
                args = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Dropping tool call with unparseable arguments: {function.get('name')}")
                continue
            tool_calls.append(ToolCall(tool_name=function.get("name", ""), args=args))

        finish_reason = None
        if response.get("choices"):
            finish_reason = response["choices"][0].get("finish_reason")
        return ToolCallingResult(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    async def embed(self, text: str) -> List[float]:
        canonical = canonicalize_command(text, self.config.embedding_max_chars)
        embeddings = await self.get_embeddings([canonical])
        return embeddings[0]

    @staticmethod
    def _first_message(response: Dict[str, Any]) -> Dict[str, Any]:
        choices = response.get("choices") or []
        if not choices:
            return {}
        return choices[0].get("message") or {}
