"""Pytest overall configuration file for fixtures"""

import copy
import json
import httpx
import pytest
from archivestore.filestorage import FileStorageService
from archivestore.remotestorage import RemoteStorageService

REPOSITORY_URL = "http://repository.test"


def pytest_addoption(parser):
    """Run slow tests only when a flag is set on pytest."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


@pytest.fixture(name="props")
def init_props(tmp_path):
    """Properties to initialize a FileStorageService."""
    directory = tmp_path / "archivestore" / "store"
    directory.mkdir(parents=True)
    # Note, entities generated via tests are placed in a temporary folder
    properties = {
        "store_path": directory.as_posix(),
        "store_digest_algorithms": ["sha1", "md5"],
    }
    return properties


@pytest.fixture(name="store")
def init_store(props):
    """Create FileStorageService instance for all tests."""
    store = FileStorageService(props)
    return store


@pytest.fixture(name="other_store")
def init_other_store(tmp_path):
    """Create a second, independent FileStorageService."""
    directory = tmp_path / "archivestore" / "other"
    store = FileStorageService({"store_path": directory.as_posix()})
    return store


@pytest.fixture(name="repository")
def init_repository():
    """In-memory object repository answering the remote repository protocol."""
    return FakeRepository()


@pytest.fixture(name="remote_props")
def init_remote_props():
    """Properties to initialize a RemoteStorageService."""
    properties = {
        "repository_url": REPOSITORY_URL,
        "repository_timeout": 5,
        "repository_page_size": 2,
    }
    return properties


@pytest.fixture(name="remote_store")
def init_remote_store(remote_props, repository):
    """Create RemoteStorageService instance talking to the fake repository."""
    client = httpx.Client(transport=httpx.MockTransport(repository.handle))
    store = RemoteStorageService(remote_props, client=client)
    yield store
    store.close()


@pytest.fixture(name="contents")
def init_contents():
    """Shared test harness data.
    - content: bytes of the binary
    - sha1/md5/sha256: hex digests of the content
    """
    test_contents = {
        "hello": {
            "content": b"hello",
            "size": 5,
            "sha1": "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d",
            "md5": "5d41402abc4b2a76b9719d911017c592",
            "sha256": "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824",
        },
        "hello world": {
            "content": b"hello world",
            "size": 11,
            "sha1": "2aae6c35c94fcfb415dbe95f408b9ce91ee846ed",
            "md5": "5eb63bbbe01eeed093cb22bb8f5acdc3",
        },
        "abc": {
            "content": b"abc",
            "size": 3,
            "sha1": "a9993e364706816aba3e25717850c26c9cd0d89d",
            "md5": "900150983cd24fb0d6963f7d28e17f72",
        },
        "empty": {
            "content": b"",
            "size": 0,
            "sha1": "da39a3ee5e6b4b0d3255bfef95601890afd80709",
            "md5": "d41d8cd98f00b204e9800998ecf8427e",
        },
    }
    return test_contents


class FakeRepository:
    """Object repository kept in a dictionary keyed by path segments.

    Objects hold properties, datastreams hold properties and content (or an external
    URI). `fail_on` maps `(method, path)` to a status code to answer with and
    `timeout_on` holds `(method, path)` pairs that raise a read timeout, where `path`
    is the request path below `/rest/`.
    """

    def __init__(self):
        self.entities = {}
        self.requests = []
        self.fail_on = {}
        self.timeout_on = set()

    def handle(self, request):
        path = request.url.path
        if path.startswith("/rest/"):
            path = path[len("/rest/") :]
        self.requests.append((request.method, path))
        if (request.method, path) in self.timeout_on:
            raise httpx.ReadTimeout("timed out", request=request)
        if (request.method, path) in self.fail_on:
            return httpx.Response(self.fail_on[(request.method, path)], text="failure")
        parts = [part for part in path.split("/") if part]
        suffix = None
        if parts and parts[-1].startswith("fcr:"):
            suffix = parts.pop()
        key = tuple(parts)
        if suffix == "fcr:children":
            return self._list(key, request)
        if suffix == "fcr:content":
            if request.method == "PUT":
                return self._put_content(key, request)
            return self._get_content(key)
        if suffix == "fcr:metadata":
            return self._put_properties(key, request)
        if request.method == "GET":
            return self._get(key)
        if request.method == "PUT":
            return self._create_object(key, request)
        if request.method == "DELETE":
            return self._delete(key)
        if request.method in ("COPY", "MOVE"):
            return self._transfer(key, request)
        return httpx.Response(405)

    def descriptor(self, key):
        entity = self.entities[key]
        descriptor = {
            "type": entity["type"],
            "path": "/".join(key),
            "properties": entity["properties"],
        }
        if entity["type"] == "datastream":
            descriptor["size"] = len(entity["content"] or b"")
            descriptor["external"] = entity.get("external")
        return descriptor

    def children(self, key):
        return sorted(
            child
            for child in self.entities
            if len(child) == len(key) + 1 and child[: len(key)] == key
        )

    def _parent_is_object(self, key):
        if len(key) == 1:
            return True
        parent = self.entities.get(key[:-1])
        return parent is not None and parent["type"] == "object"

    def _get(self, key):
        if key not in self.entities:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, json=self.descriptor(key))

    def _create_object(self, key, request):
        if key in self.entities:
            return httpx.Response(409, text="exists")
        if not self._parent_is_object(key):
            return httpx.Response(404, text="parent not found")
        body = json.loads(request.content)
        self.entities[key] = {
            "type": "object",
            "properties": body.get("properties") or {},
        }
        return httpx.Response(201)

    def _put_content(self, key, request):
        if not key or not self._parent_is_object(key) or len(key) < 2:
            return httpx.Response(404, text="parent not found")
        existing = self.entities.get(key)
        if existing is not None and existing["type"] != "datastream":
            return httpx.Response(409, text="object exists")
        entity = existing or {"type": "datastream", "properties": {}}
        if request.headers.get("content-type") == "message/external-body":
            entity["external"] = json.loads(request.content)["externalContent"]
            entity["content"] = None
        else:
            entity["external"] = None
            entity["content"] = request.content
        self.entities[key] = entity
        return httpx.Response(201 if existing is None else 204)

    def _get_content(self, key):
        entity = self.entities.get(key)
        if entity is None:
            return httpx.Response(404, text="not found")
        if entity["type"] != "datastream" or entity["content"] is None:
            return httpx.Response(400, text="no content")
        return httpx.Response(200, content=entity["content"])

    def _put_properties(self, key, request):
        if key not in self.entities:
            return httpx.Response(404, text="not found")
        self.entities[key]["properties"] = json.loads(request.content)["properties"]
        return httpx.Response(204)

    def _list(self, key, request):
        if key and key not in self.entities:
            return httpx.Response(404, text="not found")
        if key and self.entities[key]["type"] != "object":
            return httpx.Response(400, text="not an object")
        children = self.children(key)
        limit = int(request.url.params.get("limit", "100"))
        start = int(request.url.params.get("cursor", "0"))
        page = children[start : start + limit]
        cursor = str(start + limit) if start + limit < len(children) else None
        return httpx.Response(
            200,
            json={
                "children": [self.descriptor(child) for child in page],
                "cursor": cursor,
            },
        )

    def _subtree(self, key):
        return [entity for entity in self.entities if entity[: len(key)] == key]

    def _delete(self, key):
        if key not in self.entities:
            return httpx.Response(404, text="not found")
        for entity in self._subtree(key):
            del self.entities[entity]
        return httpx.Response(204)

    def _transfer(self, key, request):
        if key not in self.entities:
            return httpx.Response(404, text="not found")
        destination = httpx.URL(request.headers["Destination"]).path[len("/rest/") :]
        destination_key = tuple(part for part in destination.split("/") if part)
        if destination_key in self.entities:
            return httpx.Response(409, text="exists")
        if not self._parent_is_object(destination_key):
            return httpx.Response(404, text="parent not found")
        for entity in self._subtree(key):
            self.entities[destination_key + entity[len(key) :]] = copy.deepcopy(
                self.entities[entity]
            )
        if request.method == "MOVE":
            for entity in self._subtree(key):
                del self.entities[entity]
        return httpx.Response(201)
