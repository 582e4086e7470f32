"""
HTTP client for the image search service.

Used by front ends and scripts. Multi-file uploads are sent one file at a
time; a failed file is recorded and the remaining files are still uploaded.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import logging
import mimetypes

import httpx

log = logging.getLogger(__name__)

FileSpec = Union[str, Path, Tuple[str, bytes, str]]


@dataclass
class UploadOutcome:
    file_name: str
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def warning(self) -> Optional[str]:
        return (self.response or {}).get("warning")


class ImageServiceClient:
    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self._client.close()

    def search(self, query: str = "", page: int = 1, limit: int = 20) -> Dict[str, Any]:
        params = {"page": page, "limit": limit}
        if query:
            params["query"] = query
        response = self._client.get("/images/search", params=params)
        response.raise_for_status()
        return response.json()

    def upload(self, file_name: str, data: bytes, content_type: str) -> Dict[str, Any]:
        response = self._client.post(
            "/images/upload",
            files={"file": (file_name, data, content_type)},
        )
        response.raise_for_status()
        return response.json()

    def upload_many(self, files: Iterable[FileSpec]) -> List[UploadOutcome]:
        """Uploads files sequentially; each failure is isolated to its file."""
        outcomes = []
        for spec in files:
            file_name = _file_name(spec)
            try:
                file_name, data, content_type = _load(spec)
                outcome = UploadOutcome(file_name, response=self.upload(file_name, data, content_type))
            except httpx.HTTPStatusError as e:
                outcome = UploadOutcome(file_name, error=_error_detail(e.response))
            except (httpx.HTTPError, OSError) as e:
                outcome = UploadOutcome(file_name, error=str(e))
            if outcome.ok:
                log.info("Uploaded %s", file_name)
            else:
                log.error("Upload of %s failed: %s", file_name, outcome.error)
            outcomes.append(outcome)
        return outcomes


def _file_name(spec: FileSpec) -> str:
    if isinstance(spec, tuple):
        return spec[0]
    return Path(spec).name


def _load(spec: FileSpec) -> Tuple[str, bytes, str]:
    if isinstance(spec, tuple):
        return spec
    path = Path(spec)
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return path.name, path.read_bytes(), content_type


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json().get("detail") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
