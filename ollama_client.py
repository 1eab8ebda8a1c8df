import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Final, List, Optional, Union

import requests

from config import OllamaConfig
from fact_store import FactStore
from prompts import (
    build_chat_messages,
    build_image_description_prompt,
    build_image_url_fallback_prompt,
    build_search_messages,
)

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

# Ollama reads num_gpu as "layers to offload"; anything above the model's
# layer count means all of them, while 0 means CPU only.
ALL_GPU_LAYERS: Final[int] = 999

SEARCH_FAILED: Final[str] = "Sorry, I couldn't process that search query."
DESCRIPTION_FAILED: Final[str] = "Failed to generate image description"
IMAGE_GENERATION_FAILED: Final[str] = "Failed to generate image"
NO_IMAGE_PAYLOAD: Final[str] = (
    "The image model did not return an image payload. Ensure OLLAMA_IMAGE_GEN_MODEL "
    "supports generation (e.g., flux, sdxl)."
)

_DATA_URI_RE: Final = re.compile(r"data:image/(png|jpeg);base64,([A-Za-z0-9+/=]+)", re.IGNORECASE)
_RAW_BASE64_RE: Final = re.compile(r"^[A-Za-z0-9+/=]+$")
_MIN_RAW_BASE64_LENGTH: Final[int] = 128


class OllamaError(RuntimeError):
    """Ollama was unreachable, answered with an error status, or sent back something unexpected."""


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str

    @property
    def filename(self) -> str:
        return "generated.jpg" if self.mime_type == "image/jpeg" else "generated.png"


class OllamaClient:
    """
    A client for interacting with a local Ollama instance.

    All calls are blocking (`requests`); the bot runs them through
    `asyncio.to_thread` so the event loop stays responsive.

    Attributes:
        config (OllamaConfig): Endpoint, model names and resource options.
        fact_store (FactStore): Source of the remembered facts injected into prompts.
    """

    def __init__(self, config: OllamaConfig, fact_store: FactStore) -> None:
        self.config: Final[OllamaConfig] = config
        self.fact_store: Final[FactStore] = fact_store

    def resource_options(self) -> Dict[str, int]:
        """
        GPU/CPU options merged into every generation request.

        Returns:
            Dict[str, int]: `num_gpu` (and `num_thread` when configured).
        """
        options: Dict[str, int] = {}
        if self.config.gpu_enabled:
            if self.config.num_threads > 0:
                options["num_thread"] = self.config.num_threads
            options["num_gpu"] = ALL_GPU_LAYERS if self.config.gpu_layers == -1 else self.config.gpu_layers
        else:
            options["num_gpu"] = 0
        return options

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.config.base_url}/{endpoint}"
        body = {**payload, "stream": False, **self.resource_options()}
        try:
            response = requests.post(url, json=body, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise OllamaError(f"Request to Ollama failed: {exc}") from exc
        if not response.ok:
            raise OllamaError(f"Ollama error: {response.status_code} {response.text}")
        try:
            data = response.json()
        except ValueError as exc:
            raise OllamaError(f"Ollama returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise OllamaError(f"Unexpected Ollama payload: {data!r}")
        return data

    def _chat(self, messages: List[Dict[str, str]], model: Optional[str] = None) -> str:
        data = self._post("chat", {"model": model or self.config.chat_model, "messages": messages})
        message = data.get("message")
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise OllamaError(f"Ollama chat response has no message content: {data!r}")
        return message["content"]

    def generate(self, prompt: str, model: Optional[str] = None, images: Optional[List[str]] = None) -> str:
        """
        Call the /generate endpoint and return the raw `response` text.

        Args:
            prompt (str): Prompt text.
            model (Optional[str]): Defaults to the chat model.
            images (Optional[List[str]]): Base64-encoded images for vision models.

        Raises:
            OllamaError: On transport failure, non-2xx status or missing `response`.
        """
        payload: Dict[str, Any] = {"model": model or self.config.chat_model, "prompt": prompt}
        if images:
            payload["images"] = images
        data = self._post("generate", payload)
        text = data.get("response")
        if not isinstance(text, str):
            raise OllamaError(f"Ollama generate response has no text: {data!r}")
        return text

    def chat(self, query: str, guild_id, personality: str) -> str:
        """
        Chat completion using the guild's memory and the current personality.

        Raises:
            OllamaError: If Ollama fails or the payload is malformed.
        """
        facts = self.fact_store.values_as_string(guild_id)
        LOGGER.info(
            "Chat query: %r | Personality: %s | GPU: %s",
            query[:100] + ("..." if len(query) > 100 else ""),
            personality,
            self.config.gpu_enabled,
        )
        return self._chat(build_chat_messages(personality, facts, query))

    def search(self, query: str) -> str:
        """One-sentence answer to a search-style question; never raises."""
        try:
            return self._chat(build_search_messages(query))
        except OllamaError as exc:
            LOGGER.error("Search query failed: %s", exc)
            return SEARCH_FAILED

    def describe_image(self, image_url: str, guild_id, personality: Optional[str]) -> str:
        """
        Describe an image with the vision model.

        The image is downloaded and sent as base64. If that fails for any
        reason, the vision model is asked again with only the URL; the
        generic failure text is returned only when both attempts fail.
        """
        try:
            download = requests.get(image_url, timeout=self.config.timeout)
            if not download.ok:
                raise OllamaError(f"Failed to download image: {download.status_code} {download.reason}")
            encoded = base64.b64encode(download.content).decode("utf-8")

            facts = ""
            if guild_id is not None:
                facts = self.fact_store.values_as_string(guild_id)

            prompt = build_image_description_prompt(personality, facts)
            return self.generate(prompt, model=self.config.vision_model, images=[encoded]).strip()
        except (requests.RequestException, OllamaError, ValueError) as exc:
            LOGGER.error("Image description failed for %s: %s", image_url, exc)

        try:
            fallback = build_image_url_fallback_prompt(image_url)
            return self.generate(fallback, model=self.config.vision_model).strip()
        except OllamaError as exc:
            LOGGER.error("URL-only image description failed for %s: %s", image_url, exc)
        return DESCRIPTION_FAILED

    def generate_image(self, prompt: str) -> Union[GeneratedImage, str]:
        """
        Generate an image from a text prompt.

        Returns:
            Union[GeneratedImage, str]: The decoded image, or a string
            explaining why there is none. Callers check the type.
        """
        try:
            text = self.generate(prompt, model=self.config.image_gen_model)
        except OllamaError as exc:
            LOGGER.error("Image generation failed: %s", exc)
            return IMAGE_GENERATION_FAILED
        return parse_image_payload(text)

    def check_connection(self) -> List[str]:
        """Log the models Ollama has available. Only warns on failure."""
        url = f"{self.config.base_url}/tags"
        try:
            response = requests.get(url, timeout=self.config.timeout)
            if not response.ok:
                LOGGER.warning("Connection failed - check Ollama at %s", self.config.base_url)
                return []
            names = [m.get("name", "") for m in response.json().get("models", [])]
        except (requests.RequestException, ValueError, AttributeError) as exc:
            LOGGER.warning("Could not reach Ollama at %s: %s", self.config.base_url, exc)
            return []
        LOGGER.info("Models available: %s", ", ".join(names))
        return names


def parse_image_payload(text: str) -> Union[GeneratedImage, str]:
    """Pull an image out of model output: a data URI anywhere, or the whole text as bare base64."""
    match = _DATA_URI_RE.search(text)
    try:
        if match:
            mime = f"image/{match.group(1).lower()}"
            return GeneratedImage(base64.b64decode(match.group(2)), mime)

        stripped = text.strip()
        if len(stripped) > _MIN_RAW_BASE64_LENGTH and _RAW_BASE64_RE.match(stripped):
            return GeneratedImage(base64.b64decode(stripped), "image/png")
    except (binascii.Error, ValueError) as exc:
        LOGGER.error("Image payload was not valid base64: %s", exc)
    return NO_IMAGE_PAYLOAD
