"""Content classifier providers for CleanCopy.

This module implements the external content-safety classifier behind a small
provider abstraction:
- Image decoding to RGB pixel tensors (Pillow + numpy)
- An HTTP provider talking to an nsfwjs-style classification service
- A null provider used when safety checks are disabled
- Per-provider rate limiting, retries and health metrics
"""
from __future__ import annotations

import asyncio
import io
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
import backoff
import numpy as np
from PIL import Image

from .config import ClassifierConfig, ClassifierProvider, config, logger
from .exceptions import ClassifierError
from .models import Prediction


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an ``H x W x 3`` uint8 RGB tensor.

    The Pillow images are closed before returning, on success or failure.
    """
    with Image.open(io.BytesIO(data)) as img:
        with img.convert("RGB") as rgb:
            return np.array(rgb, dtype=np.uint8)


def encode_jpeg(pixels: np.ndarray, quality: int = 90) -> bytes:
    """Encode an RGB tensor as JPEG bytes for transport."""
    buffer = io.BytesIO()
    with Image.fromarray(np.asarray(pixels, dtype=np.uint8)) as img:
        img.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def parse_predictions(payload: Any) -> List[Prediction]:
    """Normalize the classifier service response into Prediction records.

    Accepts the nsfwjs list shape (``[{"className", "probability"}]``), a
    ``{"predictions": [...]}`` wrapper, or ``label``/``score`` pairs.
    """
    if isinstance(payload, dict):
        if "predictions" in payload:
            payload = payload["predictions"]
        elif "results" in payload:
            payload = payload["results"]
        else:
            payload = [payload]
    if not isinstance(payload, list):
        raise ClassifierError(f"Unexpected classifier response: {payload!r}")

    predictions = []
    for item in payload:
        if not isinstance(item, dict):
            raise ClassifierError(f"Unexpected prediction item: {item!r}")
        label = item.get("className", item.get("label"))
        probability = item.get("probability", item.get("score"))
        if label is None or probability is None:
            raise ClassifierError(f"Prediction missing label or probability: {item!r}")
        predictions.append(Prediction(label=str(label), probability=float(probability)))
    return predictions


@dataclass
class ProviderMetrics:
    """Metrics for tracking classifier performance."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_processing_time: float = 0.0

    def add_request(self, processing_time: float, success: bool):
        """Add metrics for a single request."""
        self.total_requests += 1
        self.total_processing_time += processing_time
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests > 0 else 0.0

    @property
    def avg_processing_time(self) -> float:
        return self.total_processing_time / self.total_requests if self.total_requests > 0 else 0.0


class ClassifierProviderBase(ABC):
    """Abstract base class for content classifiers."""

    name = "base"

    def __init__(self, max_concurrent_requests: int = 2):
        self.metrics = ProviderMetrics()
        self.is_available = False
        self.last_error: Optional[str] = None
        self.rate_limiter = asyncio.Semaphore(max(1, max_concurrent_requests))

    async def initialize(self) -> bool:
        """Prepare the provider; returns availability."""
        self.is_available = True
        return True

    async def close(self) -> None:
        """Release provider resources."""

    async def classify(self, pixels: np.ndarray) -> Sequence[Prediction]:
        """Classify one decoded image, tracking latency and failures."""
        start_time = time.time()
        async with self.rate_limiter:
            try:
                predictions = await self._classify(pixels)
            except Exception as e:
                self.metrics.add_request(time.time() - start_time, False)
                self.last_error = str(e)
                raise
        self.metrics.add_request(time.time() - start_time, True)
        return predictions

    @abstractmethod
    async def _classify(self, pixels: np.ndarray) -> Sequence[Prediction]:
        """Provider-specific classification call."""

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the model being used."""

    def get_health_status(self) -> Dict[str, Any]:
        """Get health status of the provider."""
        return {
            "provider": self.name,
            "is_available": self.is_available,
            "last_error": self.last_error,
            "success_rate": self.metrics.success_rate,
            "avg_processing_time": self.metrics.avg_processing_time,
            "total_requests": self.metrics.total_requests
        }

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def _is_client_error(exc: Exception) -> bool:
    return isinstance(exc, aiohttp.ClientResponseError) and exc.status < 500


class HttpClassifierProvider(ClassifierProviderBase):
    """Posts images to an HTTP classification service (nsfwjs compatible)."""

    name = "http"

    def __init__(self, url: str, *, max_concurrent_requests: int = 2, request_timeout: int = 60,
                 max_retries: int = 3):
        super().__init__(max_concurrent_requests)
        self.url = url
        self.request_timeout = request_timeout
        self.max_retries = max(1, max_retries)
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> bool:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        self.is_available = True
        logger.info(f"HTTP classifier initialized for {self.url}")
        return True

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self.is_available = False

    async def _classify(self, pixels: np.ndarray) -> Sequence[Prediction]:
        if self._session is None or self._session.closed:
            await self.initialize()
        loop = asyncio.get_running_loop()
        body = await loop.run_in_executor(None, encode_jpeg, pixels)
        payload = await self._post(body)
        return parse_predictions(payload)

    async def _post(self, body: bytes) -> Any:
        retrying = backoff.on_exception(
            backoff.expo,
            (aiohttp.ClientError, asyncio.TimeoutError),
            max_tries=self.max_retries,
            max_time=120,
            giveup=_is_client_error,
        )(self._post_once)
        return await retrying(body)

    async def _post_once(self, body: bytes) -> Any:
        form = aiohttp.FormData()
        form.add_field("image", body, filename="image.jpg", content_type="image/jpeg")
        async with self._session.post(self.url, data=form) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": self.name,
            "url": self.url,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
        }


class NullClassifierProvider(ClassifierProviderBase):
    """Returns no predictions, so every image is judged clean."""

    name = "none"

    async def _classify(self, pixels: np.ndarray) -> Sequence[Prediction]:
        return []

    def get_model_info(self) -> Dict[str, Any]:
        return {"provider": self.name}


def build_provider(classifier_config: Optional[ClassifierConfig] = None) -> ClassifierProviderBase:
    """Create the configured classifier provider."""
    settings = classifier_config or config.classifier
    if settings.provider is ClassifierProvider.NONE:
        return NullClassifierProvider(settings.max_concurrent_requests)
    return HttpClassifierProvider(
        settings.url,
        max_concurrent_requests=settings.max_concurrent_requests,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


__all__ = [
    "ClassifierProviderBase",
    "HttpClassifierProvider",
    "NullClassifierProvider",
    "ProviderMetrics",
    "build_provider",
    "decode_image",
    "encode_jpeg",
    "parse_predictions"
]
