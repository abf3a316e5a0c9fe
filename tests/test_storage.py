"""Tests for the object storage client (HTTP layer mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from layermedia.cdn.storage import BunnyStorage, StorageObject, join_key
from layermedia.errors import RemoteNotFound, TransferError


def _response(status=200, json_data=None, chunks=(), text=""):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text
    response.json.return_value = json_data
    response.iter_content.return_value = list(chunks)
    return response


@pytest.fixture()
def storage():
    client = BunnyStorage("secret", "artworks", base_url="https://storage.example.com/")
    yield client
    client.close()


class TestJoinKey:
    def test_joins(self):
        assert join_key("a/", "/b", "c/d.txt") == "a/b/c/d.txt"

    def test_drops_empty(self):
        assert join_key("", "x", "") == "x"
        assert join_key("") == ""

    def test_backslashes(self):
        assert join_key("a", "b\\c.txt") == "a/b/c.txt"


class TestStorageObject:
    def test_from_json(self):
        obj = StorageObject.from_json({
            "ObjectName": "sub", "Path": "/artworks/base/", "Length": 0, "IsDirectory": True,
        })
        assert obj.object_name == "sub"
        assert obj.is_directory

    def test_missing_length(self):
        assert StorageObject.from_json({"ObjectName": "f", "Length": None}).length == 0


class TestBunnyStorage:
    def test_access_key_header(self, storage):
        assert storage._session.headers["AccessKey"] == "secret"

    def test_url_for(self, storage):
        assert storage.url_for("base/a.txt") == "https://storage.example.com/artworks/base/a.txt"
        assert storage.url_for("base", directory=True) == "https://storage.example.com/artworks/base/"
        assert storage.url_for("", directory=True) == "https://storage.example.com/artworks/"

    def test_list(self, storage):
        entries = [
            {"ObjectName": "a.txt", "Length": 10, "IsDirectory": False},
            {"ObjectName": "sub", "Length": 0, "IsDirectory": True},
        ]
        with patch.object(storage._session, "request", return_value=_response(json_data=entries)) as req:
            result = storage.list("base")
        method, url = req.call_args.args
        assert method == "GET"
        assert url == "https://storage.example.com/artworks/base/"
        assert req.call_args.kwargs["headers"] == {"Accept": "application/json"}
        assert [o.object_name for o in result] == ["a.txt", "sub"]
        assert result[0].length == 10

    def test_list_not_found(self, storage):
        with patch.object(storage._session, "request", return_value=_response(404, text="Not Found")):
            with pytest.raises(RemoteNotFound) as exc:
                storage.list("missing")
        assert exc.value.status_code == 404

    def test_list_server_error(self, storage):
        with patch.object(storage._session, "request", return_value=_response(500, text="oops")):
            with pytest.raises(TransferError) as exc:
                storage.list("base")
        assert not isinstance(exc.value, RemoteNotFound)
        assert "500" in str(exc.value)

    def test_connection_error(self, storage):
        with patch.object(storage._session, "request", side_effect=requests.ConnectionError("down")):
            with pytest.raises(TransferError, match="down"):
                storage.delete("base/a.txt")

    def test_get_streams_to_file(self, storage, tmp_path):
        response = _response(chunks=[b"abc", b"", b"de"])
        chunks = []
        with patch.object(storage._session, "request", return_value=response) as req:
            written = storage.get("base/x/a.bin", tmp_path / "x" / "a.bin", chunks.append)
        assert written == 5
        assert chunks == [3, 2]
        assert (tmp_path / "x" / "a.bin").read_bytes() == b"abcde"
        assert req.call_args.kwargs["stream"] is True

    def test_get_not_found_writes_nothing(self, storage, tmp_path):
        with patch.object(storage._session, "request", return_value=_response(404)):
            with pytest.raises(RemoteNotFound):
                storage.get("base/a.bin", tmp_path / "a.bin")
        assert not (tmp_path / "a.bin").exists()

    def test_put(self, storage, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("hello")
        with patch.object(storage._session, "request", return_value=_response(201)) as req:
            storage.put("base/a.txt", source)
        method, url = req.call_args.args
        assert method == "PUT"
        assert url == "https://storage.example.com/artworks/base/a.txt"
        assert req.call_args.kwargs["headers"]["Content-Type"] == "application/octet-stream"

    def test_put_failure(self, storage, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("hello")
        with patch.object(storage._session, "request", return_value=_response(401, text="denied")):
            with pytest.raises(TransferError, match="Upload failed"):
                storage.put("base/a.txt", source)
