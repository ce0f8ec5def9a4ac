from __future__ import annotations

import io
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import httpx
import replicate
from dotenv import load_dotenv
from replicate.exceptions import ModelError, ReplicateError

load_dotenv()

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Transport or model failure while generating candidates."""


class EmptyGenerationError(GenerationError):
    """The model call succeeded but returned no images."""


@dataclass
class ReplicateModels:
    edit_model: str
    resolution: str = "4K"
    output_format: str = "png"
    mock: bool = False
    edit_params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg) -> "ReplicateModels":
        return cls(
            edit_model=cfg.model,
            resolution=cfg.resolution,
            output_format=cfg.output_format,
            mock=bool(cfg.mock),
            edit_params=dict(cfg.params or {}),
        )


class ReplicateClient:
    def __init__(self, models: ReplicateModels, download_timeout: int = 120) -> None:
        self.client = replicate.Client(api_token=os.getenv("REPLICATE_API_TOKEN"))
        self.models = models
        self.download_timeout = download_timeout

    def generate(
        self,
        instruction: str,
        images: Sequence[bytes],
        num_candidates: int = 3,
        resolution: str | None = None,
    ) -> List[bytes]:
        """
        Runs one multi-image edit call. ``images[0]`` is the masked canvas, the rest are references.
        Raises ``EmptyGenerationError`` when nothing comes back and ``GenerationError`` on transport failure.
        """
        if not images:
            raise ValueError("generate() needs at least the primary image")
        model = self.models.edit_model
        if self.models.mock:
            logger.info("Generate (mock) | model=%s | candidates=%s", model, num_candidates)
            return [bytes(images[0]) for _ in range(max(1, num_candidates))]

        handles = [io.BytesIO(data) for data in images]
        payload = self._build_edit_payload(
            model,
            handles,
            instruction,
            num_candidates=num_candidates,
            resolution=resolution or self.models.resolution,
        )
        logger.info(
            "Generate start | model=%s | images=%s | candidates=%s",
            model,
            len(images),
            num_candidates,
        )
        try:
            result = self.client.run(model, input=payload)
            outputs = [self._read_output(item) for item in self._normalize_outputs(result)]
        except (ReplicateError, ModelError, httpx.HTTPError) as err:
            raise GenerationError(f"{model} failed: {err}") from err
        except (urllib.error.URLError, OSError) as err:
            raise GenerationError(f"Downloading {model} output failed: {err}") from err

        outputs = [data for data in outputs if data]
        if not outputs:
            raise EmptyGenerationError(f"No images returned from {model}")
        logger.info("Generate success | model=%s | images=%s", model, len(outputs))
        return outputs

    def _build_edit_payload(
        self,
        model: str,
        image_handles: List[Any],
        instruction: str,
        *,
        num_candidates: int,
        resolution: str,
    ) -> Dict[str, Any]:
        if model == "openai/gpt-image-1.5":
            payload = {
                "prompt": instruction,
                "quality": "high",
                "background": "auto",
                "moderation": "auto",
                "aspect_ratio": "match_input_image",
                "output_format": self.models.output_format,
                "input_fidelity": "high",
                "number_of_images": num_candidates,
                "input_images": image_handles,
            }
        elif model == "bytedance/seedream-4":
            payload = {
                "size": resolution,
                "prompt": instruction,
                "max_images": num_candidates,
                "image_input": image_handles,
                "aspect_ratio": "match_input_image",
                "enhance_prompt": False,
                "sequential_image_generation": "auto" if num_candidates > 1 else "disabled",
            }
        elif model == "google/nano-banana-pro":
            if num_candidates > 1:
                logger.debug("%s returns one image per call; ignoring candidates=%s", model, num_candidates)
            payload = {
                "prompt": instruction,
                "resolution": resolution,
                "image_input": image_handles,
                "aspect_ratio": "match_input_image",
                "output_format": self.models.output_format,
                "safety_filter_level": "block_only_high",
            }
        else:
            raise ValueError(f"Invalid model: {model}")
        payload.update(self.models.edit_params)
        return payload

    def _normalize_outputs(self, result: Any) -> List[Any]:
        if result is None:
            return []
        if isinstance(result, (list, tuple)):
            return list(result)
        return [result]

    def _read_output(self, item: Any) -> bytes:
        if isinstance(item, (bytes, bytearray)):
            return bytes(item)
        if isinstance(item, str):
            return self._download_url(item)
        if hasattr(item, "read"):
            return item.read()
        logger.warning("Unsupported output type from model: %s", type(item).__name__)
        return b""

    def _download_url(self, url: str) -> bytes:
        logger.debug("Downloading %s", url)
        with urllib.request.urlopen(url, timeout=self.download_timeout) as response:
            return response.read()
