"""Thin Cloudinary REST client: signed uploads, delivery URLs, asset metadata.

Only the handful of endpoints the gallery needs are covered. Every call is a
single attempt bounded by the configured timeout; transport errors and non-2xx
responses surface as `UpstreamUnavailable` so callers can log and continue.
"""
import hashlib
import logging
import secrets
import time

import httpx

from settings import Settings
from store.errors import UpstreamUnavailable
from utils.image_probe import probe_dimensions

logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE = "https://res.cloudinary.com"

_DELIVERY_TRANSFORMATION = "f_auto,q_auto"


class CloudinaryClient:
    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout: float = 10.0,
        thumbnail_width: int = 400,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self._api_secret = api_secret
        self.thumbnail_width = thumbnail_width
        self._http = httpx.Client(timeout=httpx.Timeout(timeout), transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.BaseTransport | None = None) -> "CloudinaryClient":
        return cls(
            cloud_name=settings.cloudinary_cloud_name or "",
            api_key=settings.cloudinary_api_key or "",
            api_secret=settings.cloudinary_api_secret or "",
            timeout=settings.request_timeout,
            thumbnail_width=settings.thumbnail_width,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    # ---------------------------------------------------------------------------
    # Signing
    # ---------------------------------------------------------------------------

    def sign(self, params: dict) -> str:
        """Cloudinary request signature: SHA-1 of sorted `k=v` pairs + API secret."""
        to_sign = "&".join(
            f"{key}={value}" for key, value in sorted(params.items()) if value not in (None, "")
        )
        return hashlib.sha1((to_sign + self._api_secret).encode("utf-8")).hexdigest()

    def signed_upload_params(self, folder: str) -> dict:
        """Credentials for a direct browser-to-Cloudinary upload into `folder`."""
        params = {
            "timestamp": int(time.time()),
            "folder": folder,
            "public_id": secrets.token_hex(14),
        }
        return {
            **params,
            "signature": self.sign(params),
            "api_key": self.api_key,
            "cloud_name": self.cloud_name,
        }

    def _signed_form(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "signature": self.sign(params), "api_key": self.api_key}

    # ---------------------------------------------------------------------------
    # Delivery URLs
    # ---------------------------------------------------------------------------

    def delivery_url(self, public_id: str, transformation: str | None = None,
                     resource_type: str = "image") -> str:
        parts = [DELIVERY_BASE, self.cloud_name, resource_type, "upload"]
        if transformation:
            parts.append(transformation)
        parts.append(public_id)
        return "/".join(parts)

    def url(self, blob_ref: str) -> str:
        return self.delivery_url(blob_ref, _DELIVERY_TRANSFORMATION)

    def thumbnail_url(self, blob_ref: str) -> str:
        return self.delivery_url(
            blob_ref, f"c_limit,{_DELIVERY_TRANSFORMATION},w_{self.thumbnail_width}"
        )

    # ---------------------------------------------------------------------------
    # Assets
    # ---------------------------------------------------------------------------

    def resource_dimensions(self, public_id: str) -> tuple[int, int]:
        """Pixel size of an uploaded image.

        Asks the Admin API first; if it reports no size, downloads the original
        and reads the header locally.
        """
        response = self._request(
            "GET",
            f"{API_BASE}/{self.cloud_name}/resources/image/upload/{public_id}",
            auth=(self.api_key, self._api_secret),
        )
        info = _json(response)
        width, height = int(info.get("width") or 0), int(info.get("height") or 0)
        if width and height:
            return width, height

        logger.info("No dimensions in metadata for %s; probing original", public_id)
        original = self._request("GET", self.delivery_url(public_id))
        try:
            return probe_dimensions(original.content)
        except ValueError as exc:
            raise UpstreamUnavailable(f"Could not read dimensions of {public_id}: {exc}") from exc

    def destroy(self, public_id: str, resource_type: str = "image") -> None:
        response = self._request(
            "POST",
            f"{API_BASE}/{self.cloud_name}/{resource_type}/destroy",
            data=self._signed_form({"public_id": public_id}),
        )
        result = _json(response).get("result")
        if result == "not found":
            logger.info("Asset %s already absent from Cloudinary", public_id)
        elif result != "ok":
            raise UpstreamUnavailable(f"Cloudinary destroy of {public_id} returned {result!r}")

    def upload_raw(self, public_id: str, data: bytes) -> None:
        form = self._signed_form({"public_id": public_id, "overwrite": "true", "invalidate": "true"})
        self._request(
            "POST",
            f"{API_BASE}/{self.cloud_name}/raw/upload",
            data=form,
            files={"file": (public_id.rsplit("/", 1)[-1], data, "application/json")},
        )

    def fetch_raw(self, public_id: str) -> bytes:
        return self._request("GET", self.delivery_url(public_id, resource_type="raw")).content

    # ---------------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"Cloudinary {method} {url} failed: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Cloudinary {method} {url} failed: {exc}") from exc
        return response


def _json(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError as exc:
        raise UpstreamUnavailable(f"Cloudinary returned a non-JSON body from {response.url}") from exc
    if not isinstance(payload, dict):
        raise UpstreamUnavailable(f"Cloudinary returned unexpected JSON from {response.url}")
    return payload
