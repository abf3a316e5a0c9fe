"""Bunny Storage object API client.

Objects are addressed as ``{base_url}/{zone}/{path}``; a trailing slash
lists a directory. Requests authenticate with the ``AccessKey`` header.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import requests

from layermedia.errors import RemoteNotFound, TransferError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://storage.bunnycdn.com"


@dataclass
class StorageObject:
    """One entry of a directory listing."""

    object_name: str
    path: str  # "/{zone}/{dir}/", the directory holding the object
    length: int = 0
    is_directory: bool = False

    @classmethod
    def from_json(cls, data: dict) -> "StorageObject":
        return cls(
            object_name=data.get("ObjectName", ""),
            path=data.get("Path", ""),
            length=int(data.get("Length") or 0),
            is_directory=bool(data.get("IsDirectory", False)),
        )


def join_key(*parts: str) -> str:
    """Join path segments with single slashes, dropping empty ones."""
    segments = []
    for part in parts:
        segments.extend(s for s in str(part).replace("\\", "/").split("/") if s)
    return "/".join(segments)


class BunnyStorage:
    """list / get / put / delete against one storage zone."""

    def __init__(
        self,
        api_key: str,
        zone: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        chunk_size: int = 1024 * 1024,
        session: requests.Session | None = None,
    ):
        self.zone = zone
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._session = session or requests.Session()
        self._session.headers["AccessKey"] = api_key

    def url_for(self, key: str, directory: bool = False) -> str:
        url = f"{self.base_url}/{join_key(self.zone, key)}"
        return url + "/" if directory else url

    def _check(self, response: requests.Response, action: str, key: str) -> None:
        if response.ok:
            return
        message = f"{action} failed for {key}: {response.status_code} {response.text[:200]}"
        if response.status_code == 404:
            raise RemoteNotFound(message, status_code=404, path=key)
        raise TransferError(message, status_code=response.status_code, path=key)

    def _request(self, method: str, key: str, action: str, **kwargs) -> requests.Response:
        url = kwargs.pop("url", None) or self.url_for(key)
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransferError(f"{action} failed for {key}: {e}", path=key) from e

    def list(self, key: str) -> list[StorageObject]:
        """List the direct children of directory *key*.

        Raises:
            RemoteNotFound: If the directory does not exist.
            TransferError: On any other failure.
        """
        url = self.url_for(key, directory=True)
        logger.debug("Listing %s", url)
        response = self._request(
            "GET", key, "List", url=url, headers={"Accept": "application/json"}
        )
        self._check(response, "List", key)
        try:
            entries = response.json()
        except ValueError as e:
            raise TransferError(f"List returned invalid JSON for {key}", path=key) from e
        return [StorageObject.from_json(entry) for entry in entries]

    def get(self, key: str, destination: str | Path) -> int:
        """Stream object *key* into *destination*; returns bytes written."""
        destination = Path(destination)
        response = self._request("GET", key, "Download", stream=True)
        with response:
            self._check(response, "Download", key)
            destination.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            try:
                with open(destination, "wb") as fh:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        written += len(chunk)
            except requests.RequestException as e:
                destination.unlink(missing_ok=True)
                raise TransferError(f"Download failed for {key}: {e}", path=key) from e
        return written

    def put(self, key: str, source: str | Path) -> None:
        with open(source, "rb") as fh:
            response = self._request(
                "PUT", key, "Upload",
                data=fh,
                headers={"Content-Type": "application/octet-stream"},
            )
        self._check(response, "Upload", key)

    def delete(self, key: str) -> None:
        response = self._request("DELETE", key, "Delete")
        self._check(response, "Delete", key)

    def close(self) -> None:
        self._session.close()
