"""
SatHub API client - creates posts and uploads pass artifacts
"""

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import urllib3

from .errors import ApiError

DEFAULT_TIMEOUT_SECONDS = 30.0

CBOR_CONTENT_TYPE = "application/cbor"
CADU_CONTENT_TYPE = "application/octet-stream"

# Leading bytes of the image formats SatDump writes
_IMAGE_SIGNATURES = (
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'\xff\xd8\xff', 'image/jpeg'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
    (b'II*\x00', 'image/tiff'),
    (b'MM\x00*', 'image/tiff'),
)


def detect_image_type(path: Path) -> str:
    """Guess an image's content type from its first bytes, then from its name."""
    with open(path, 'rb') as f:
        head = f.read(16)
    for signature, content_type in _IMAGE_SIGNATURES:
        if head.startswith(signature):
            return content_type
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or CADU_CONTENT_TYPE


@dataclass
class PostRequest:
    timestamp: str
    satellite_name: str
    metadata: str = ""

    def to_dict(self) -> Dict[str, str]:
        body = {'timestamp': self.timestamp, 'satellite_name': self.satellite_name}
        if self.metadata:
            body['metadata'] = self.metadata
        return body


@dataclass
class PostResponse:
    id: str
    station_id: str = ""
    station_name: str = ""
    timestamp: str = ""
    satellite_name: str = ""
    metadata: str = ""
    images: List[Dict[str, Any]] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostResponse":
        if not isinstance(data, dict) or data.get('id') in (None, ''):
            raise ApiError("post response has no id")
        return cls(
            id=str(data['id']),
            station_id=str(data.get('station_id') or ''),
            station_name=str(data.get('station_name') or ''),
            timestamp=str(data.get('timestamp') or ''),
            satellite_name=str(data.get('satellite_name') or ''),
            metadata=str(data.get('metadata') or ''),
            images=list(data.get('images') or []),
            created_at=str(data.get('created_at') or ''),
            updated_at=str(data.get('updated_at') or ''),
        )


@dataclass
class HealthResponse:
    status: str = ""
    station_id: str = ""
    timestamp: str = ""
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthResponse":
        if not isinstance(data, dict):
            raise ApiError("health response is not a JSON object")
        settings = data.get('settings')
        return cls(
            status=str(data.get('status') or ''),
            station_id=str(data.get('station_id') or ''),
            timestamp=str(data.get('timestamp') or ''),
            settings=settings if isinstance(settings, dict) else {},
        )


class StationApiClient:
    """Talks to the SatHub API on behalf of one ground station."""

    def __init__(self,
                 base_url: str,
                 station_token: str,
                 *,
                 insecure: bool = False,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        """
        Initialize the API client.

        Args:
            base_url: SatHub API root, without the /api suffix
            station_token: Token sent in the Authorization header
            insecure: Skip TLS certificate verification
            timeout_seconds: Timeout applied to every request
            session: requests session to reuse
        """
        self.base_url = base_url.rstrip('/')
        self.station_token = station_token
        self.timeout_seconds = float(timeout_seconds)

        self.session = session if session is not None else requests.Session()
        self.session.headers.update({'Authorization': f"Station {self.station_token}"})
        self.session.verify = not insecure
        if insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # -----------------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------------

    def create_post(self, request: PostRequest) -> PostResponse:
        response = self._post(self._url("posts"), json=request.to_dict())
        self._check(response, "API request")
        return PostResponse.from_dict(self._data(response))

    def upload_image(self, post_id: str, image_path: Path):
        image_path = Path(image_path)
        try:
            content_type = detect_image_type(image_path)
        except OSError as e:
            raise ApiError(f"failed to open image file: {e}") from e
        self._upload(f"posts/{post_id}/images", 'image', image_path, content_type, "image upload")

    def upload_cbor(self, post_id: str, cbor_path: Path):
        self._upload(f"posts/{post_id}/cbor", 'cbor', Path(cbor_path), CBOR_CONTENT_TYPE, "CBOR upload")

    def upload_cadu(self, post_id: str, cadu_path: Path):
        self._upload(f"posts/{post_id}/cadu", 'cadu', Path(cadu_path), CADU_CONTENT_TYPE, "CADU upload")

    def station_health(self) -> HealthResponse:
        """Report the station as alive and fetch its server-side settings."""
        response = self._post(self._url("stations/health"))
        self._check(response, "health check")
        return HealthResponse.from_dict(self._data(response))

    # -----------------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path}"

    def _upload(self, path: str, field_name: str, file_path: Path, content_type: str, what: str):
        try:
            with open(file_path, 'rb') as f:
                files = {field_name: (file_path.name, f, content_type)}
                response = self._post(self._url(path), files=files)
        except OSError as e:
            raise ApiError(f"failed to open {field_name} file {file_path}: {e}") from e
        self._check(response, what)

    def _post(self, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.post(url, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"failed to send request to {url}: {e}") from e

    @staticmethod
    def _check(response: requests.Response, what: str):
        if not 200 <= response.status_code < 300:
            raise ApiError(
                f"{what} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

    @staticmethod
    def _data(response: requests.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(f"failed to decode response: {e}") from e
        if not isinstance(payload, dict):
            raise ApiError("response is not a JSON object")
        return payload.get('data') or {}
