"""httpx clients for the generation, frame and upscaling services."""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..errors import ProviderError
from ..generation import model_endpoint
from ..models import FrameSet, GenerationMode
from .backends import EnhancementProvider, FrameExtractor, GenerationProvider

logger = logging.getLogger(__name__)


class _HttpClientMixin:
    """Shared request handling: optional injected client, bearer auth, error mapping."""

    base_url: str
    api_token: Optional[str]
    timeout_s: float
    _client: Optional[httpx.AsyncClient]
    auth_scheme = "Bearer"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"{self.auth_scheme} {self.api_token}"
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(method, url, headers=self._headers(), **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                return await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _json(resp: httpx.Response, what: str) -> Dict[str, Any]:
        if resp.status_code >= 400:
            raise ProviderError(
                f"{what} failed: {resp.status_code} {resp.text[:200]}", status=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{what} returned invalid JSON", status=resp.status_code) from e


class HttpGenerationProvider(_HttpClientMixin, GenerationProvider):
    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_s: float = 600.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout_s = timeout_s
        self._client = client

    async def generate(self, model_id: str, mode: GenerationMode, payload: Dict[str, Any]) -> str:
        url = f"{self.base_url}{model_endpoint(mode)}"
        logger.info("Submitting %s generation to %s (model=%s)", GenerationMode(mode).value, url, model_id)
        resp = await self._request("POST", url, json=payload)
        data = self._json(resp, "Video generation")

        video_url = data.get("video_url") or (data.get("data") or {}).get("video_url")
        if not video_url:
            raise ProviderError("Generation response did not include a video_url", status=resp.status_code)
        return video_url


class HttpFrameExtractor(_HttpClientMixin, FrameExtractor):
    """Asks a frame service to cut the first and last frames of a video."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_s: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout_s = timeout_s
        self._client = client

    async def extract(self, video_url: str, first_frame_key: str, last_frame_key: str) -> FrameSet:
        resp = await self._request(
            "POST",
            f"{self.base_url}/frames/extract",
            json={
                "video_url": video_url,
                "first_frame_key": first_frame_key,
                "last_frame_key": last_frame_key,
            },
        )
        data = self._json(resp, "Frame extraction")
        try:
            return FrameSet(
                first_frame_url=data["first_frame_url"], last_frame_url=data["last_frame_url"]
            )
        except KeyError as e:
            raise ProviderError(f"Frame extraction response missing {e.args[0]}") from e


class HttpEnhancementProvider(_HttpClientMixin, EnhancementProvider):
    """Prediction-style upscaling API: submit, then poll until a terminal status."""

    auth_scheme = "Token"

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_s: float = 900.0,
        poll_interval_s: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._client = client

    async def enhance(
        self,
        model,
        input_url: str,
        scale_factor: int,
        target_resolution: Optional[str] = None,
        preserve_audio: bool = True,
    ) -> str:
        body: Dict[str, Any] = {
            "model": model.id,
            "input": {"video": input_url, "scale": scale_factor, "preserve_audio": preserve_audio},
        }
        if target_resolution:
            body["input"]["target_resolution"] = target_resolution

        resp = await self._request("POST", f"{self.base_url}/predictions", json=body)
        prediction = self._json(resp, "Enhancement submit")
        prediction_id = prediction.get("id")
        if not prediction_id:
            raise ProviderError("Enhancement submit response did not include an id")

        poll_url = (prediction.get("urls") or {}).get("get") or (
            f"{self.base_url}/predictions/{prediction_id}"
        )
        return await self.poll_result(prediction_id, poll_url, prediction)

    async def poll_result(
        self, prediction_id: str, poll_url: str, prediction: Optional[Dict[str, Any]] = None
    ) -> str:
        deadline = time.monotonic() + self.timeout_s
        while True:
            if prediction is not None:
                status = prediction.get("status")
                if status == "succeeded":
                    output = prediction.get("output")
                    if isinstance(output, list):
                        output = output[-1] if output else None
                    if not output:
                        raise ProviderError(f"Prediction {prediction_id} succeeded without output")
                    return output
                if status in ("failed", "canceled"):
                    raise ProviderError(
                        f"Prediction {prediction_id} {status}: {prediction.get('error') or 'unknown error'}"
                    )
            if time.monotonic() >= deadline:
                raise ProviderError(f"Timed out waiting for prediction {prediction_id}")
            await asyncio.sleep(self.poll_interval_s)
            resp = await self._request("GET", poll_url)
            prediction = self._json(resp, "Enhancement poll")
