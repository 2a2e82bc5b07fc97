from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

import httpx

from ..config import GeminiConfig
from ..errors import ServiceError, ValidationError
from ..media import ImageSource, load_source_image
from ..types import (
    GenerationRequest,
    ImageConfig,
    ImageInversionRequest,
    ImageRequest,
    ImageResult,
    Operation,
    OperationStatus,
    StructuredRequest,
    StructuredResult,
    TextRequest,
    TextResult,
    VideoRequest,
)
from .modalities import (
    ImageHandler,
    ImageInversionHandler,
    ModalityHandler,
    StructuredHandler,
    TextHandler,
    VideoHandler,
)

log = logging.getLogger(__name__)

INVERSION_INSTRUCTION = (
    "Act as an expert prompt engineer. Analyze this product image and write a highly "
    "detailed text-to-image prompt in English describing the product, materials, lighting, "
    "background and camera angle. Output only the prompt."
)


class GeminiClient:
    """
    Async client for the Gemini text/image models and the Veo video model.

    The client holds configuration only. Every call opens its own HTTP session with
    the current credentials and closes it when the exchange finishes.
    """

    def __init__(self, config: GeminiConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport
        self._video = VideoHandler()
        self._handlers: Dict[type, ModalityHandler[Any, Any]] = {
            TextRequest: TextHandler(),
            StructuredRequest: StructuredHandler(),
            ImageRequest: ImageHandler(),
            ImageInversionRequest: ImageInversionHandler(),
            VideoRequest: self._video,
        }

    @property
    def config(self) -> GeminiConfig:
        return self._config

    def _session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/") + "/",
            headers={
                "x-goog-api-key": self._config.api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self._config.timeout_seconds),
            transport=self._transport,
        )

    async def _exchange(self, method: str, path: str, body: Mapping[str, Any] | None = None) -> Dict[str, Any]:
        try:
            async with self._session() as session:
                response = await session.request(method, path, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ServiceError(
                f"Gemini request to {path} failed with status {exc.response.status_code}: "
                f"{_error_detail(exc.response)}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ServiceError(f"Gemini request to {path} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceError(f"Gemini returned a non-JSON response for {path}") from exc
        if not isinstance(data, dict):
            raise ServiceError(f"Gemini returned an unexpected payload for {path}: {type(data).__name__}")
        return data

    async def generate(self, request: GenerationRequest) -> Any:
        """Dispatch any request variant to its modality handler."""
        handler = self._handlers.get(type(request))
        if handler is None:
            raise ValidationError(f"Unsupported request type: {type(request).__name__}")

        handler.validate(request)
        body = handler.build_body(request, self._config)
        path = handler.endpoint(self._config)
        log.debug("Dispatching %s request to %s", request.modality.value, path)
        data = await self._exchange("POST", path, body)
        return handler.parse(request, data)

    async def generate_text(
        self,
        prompt: str,
        system_instruction: str | None = None,
        use_grounded_search: bool = False,
        output_language: str | None = None,
    ) -> TextResult:
        return await self.generate(
            TextRequest(
                prompt=prompt,
                system_instruction=system_instruction,
                grounded=use_grounded_search,
                output_language=output_language,
            )
        )

    async def generate_structured(
        self,
        prompt: str,
        schema: Mapping[str, Any],
        system_instruction: str | None = None,
    ) -> StructuredResult:
        return await self.generate(
            StructuredRequest(prompt=prompt, schema=schema, system_instruction=system_instruction)
        )

    async def generate_image(
        self,
        prompt: str,
        config: ImageConfig | None = None,
        source_image: ImageSource | None = None,
    ) -> ImageResult:
        """
        Text-to-image, or image-to-image when ``source_image`` is supplied.

        Oversized sources raise ``ValidationError`` before anything is sent. An empty
        ``ImageResult`` is a successful call with no usable output.
        """
        source = load_source_image(source_image) if source_image is not None else None
        return await self.generate(
            ImageRequest(prompt=prompt, config=config or ImageConfig(), source_image=source)
        )

    async def reverse_image_prompt(self, image: ImageSource, instruction: str = INVERSION_INSTRUCTION) -> str:
        """Describe ``image`` as a reusable generation prompt; empty means no usable inversion."""
        artifact = load_source_image(image)
        return await self.generate(ImageInversionRequest(image=artifact, instruction=instruction))

    async def start_video_generation(self, prompt: str, aspect_ratio: str = "9:16") -> Operation:
        return await self.generate(VideoRequest(prompt=prompt, aspect_ratio=aspect_ratio))

    async def poll_operation(self, operation: Operation) -> Operation:
        """
        Issue one status check and return a new snapshot.

        Terminal snapshots are returned unchanged without contacting the service.
        """
        if operation.is_terminal:
            return operation
        data = await self._exchange("GET", operation.handle)
        return self._video.parse_poll(operation, data)

    def resolve_download_url(self, operation: Operation) -> str:
        """Append the access credential to the result URI of a finished job."""
        if operation.status is not OperationStatus.DONE or not operation.result_location:
            raise ValidationError(
                f"Operation {operation.handle} has no downloadable result (status {operation.status.value})"
            )
        url = httpx.URL(operation.result_location).copy_merge_params({"key": self._config.api_key})
        return str(url)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:400]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or body["error"])
    return str(body)[:400]
