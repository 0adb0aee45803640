"""Core module for RemoteStorageService"""
import io
import logging
from urllib.parse import quote
import httpx
from archivestore.digest import (
    add_content_digest_to_metadata,
    compute_payload_digests,
    obtain_content_digest,
    strip_content_digest,
)
from archivestore.iterables import ClosableIterable
from archivestore.metadata import merge_metadata
from archivestore.model import Binary, Container, Directory, entity_class_of
from archivestore.payload import ContentPayload
from archivestore.storage_config import (
    DEFAULT_ALGO_LIST,
    REPOSITORY_PAGE_SIZE,
    REPOSITORY_TIMEOUT,
)
from archivestore.storage_exceptions import (
    AlreadyExists,
    Forbidden,
    InternalError,
    NotFound,
    RequestInvalid,
)
from archivestore.storage_service import StorageService
from archivestore.storagepath import StoragePath
from archivestore.transfer import (
    copy_between_storage_services,
    move_between_storage_services,
)

OBJECT = "object"
DATASTREAM = "datastream"
EXTERNAL_BODY = "message/external-body"


def exception_for_status(status_code, message):
    """Translate an HTTP status code of the repository into a storage exception.

    :param int status_code: HTTP status code of the response.
    :param str message: Message of the exception.

    :return: StorageServiceException
    """
    if status_code == 400:
        return RequestInvalid(message)
    if status_code == 403:
        return Forbidden(message)
    if status_code == 404:
        return NotFound(message)
    if status_code == 409:
        return AlreadyExists(message)
    return InternalError(message)


class RemoteStorageService(StorageService):
    """RemoteStorageService keeps archival entities in a remote object repository spoken
    to over HTTP. Containers and directories map to repository objects and binaries to
    datastreams, all addressed under `{repository_url}/rest/` by their storage path.

    Datastream creation is relaxed: `create_binary` over an existing datastream replaces
    it instead of raising `AlreadyExists`, because the repository cannot tell a create
    from a replace. Objects are created strictly (the repository answers 409 when the
    object already exists). Callers needing strict uniqueness for binaries must check
    with `get_binary` first.

    :param dict properties: A Python dictionary with the following keys (and values):
        - repository_url (str): Base URL of the repository.
        - repository_timeout (float, optional): Seconds to wait for the repository.
        - repository_page_size (int, optional): Children requested per listing page.
        - repository_headers (dict, optional): Headers sent with every request.
    :param httpx.Client client: HTTP client to use instead of a new one.
    """

    property_required_keys = ["repository_url"]

    def __init__(self, properties=None, client=None):
        if not properties or not isinstance(properties, dict):
            exception_string = (
                "RemoteStorageService - Properties must be supplied as a dictionary."
                + f" Properties: {properties}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        for key in self.property_required_keys:
            if properties.get(key) is None:
                exception_string = (
                    f"RemoteStorageService - Missing value for required key: {key}."
                )
                logging.debug(exception_string)
                raise KeyError(exception_string)
        self.repository_url = properties["repository_url"].rstrip("/")
        self.rest_url = self.repository_url + "/rest"
        self.timeout = properties.get("repository_timeout", REPOSITORY_TIMEOUT)
        self.page_size = properties.get("repository_page_size", REPOSITORY_PAGE_SIZE)
        if client is None:
            client = httpx.Client(
                timeout=self.timeout,
                headers=properties.get("repository_headers") or {},
                follow_redirects=True,
            )
        self.client = client
        logging.debug(
            "RemoteStorageService - Initialization success. Repository: %s",
            self.repository_url,
        )

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()

    # Public API / StorageService Interface Methods

    def list_containers(self):
        return self._list_children(None)

    def create_container(self, storage_path, metadata):
        logging.debug(
            "RemoteStorageService - create_container: Request to create container: %s",
            storage_path,
        )
        self._check_container_path(storage_path)
        self._create_object(storage_path, metadata)
        logging.info(
            "RemoteStorageService - create_container: Created container: %s",
            storage_path,
        )
        return Container(storage_path, strip_content_digest(metadata))

    def get_container(self, storage_path):
        self._check_container_path(storage_path)
        return self._get_typed_resource(storage_path, OBJECT)

    def delete_container(self, storage_path):
        self._check_container_path(storage_path)
        self.delete_resource(storage_path)

    def list_resources_under_container(self, storage_path):
        self._check_container_path(storage_path)
        return self._list_children(storage_path)

    def create_directory(self, storage_path, metadata):
        logging.debug(
            "RemoteStorageService - create_directory: Request to create directory: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        self._create_object(storage_path, metadata)
        logging.info(
            "RemoteStorageService - create_directory: Created directory: %s",
            storage_path,
        )
        return Directory(storage_path, strip_content_digest(metadata))

    def get_directory(self, storage_path):
        self._check_nested_path(storage_path)
        return self._get_typed_resource(storage_path, OBJECT)

    def list_resources_under_directory(self, storage_path):
        self._check_nested_path(storage_path)
        return self._list_children(storage_path)

    def create_binary(self, storage_path, metadata, payload, as_reference=False):
        logging.debug(
            "RemoteStorageService - create_binary: Request to create binary: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        content_digest = self._put_content(storage_path, payload, as_reference)
        binary_metadata = add_content_digest_to_metadata(
            strip_content_digest(metadata), content_digest
        )
        self._put_properties(storage_path, binary_metadata)
        logging.info(
            "RemoteStorageService - create_binary: Created binary: %s", storage_path
        )
        return self.get_binary(storage_path)

    def get_binary(self, storage_path):
        self._check_nested_path(storage_path)
        return self._get_typed_resource(storage_path, DATASTREAM)

    def update_binary_content(
        self, storage_path, payload, as_reference=False, create_if_not_exists=False
    ):
        logging.debug(
            "RemoteStorageService - update_binary_content: Request to update binary: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        try:
            binary = self.get_binary(storage_path)
        except NotFound:
            if not create_if_not_exists:
                raise
            return self.create_binary(storage_path, {}, payload, as_reference)
        content_digest = self._put_content(storage_path, payload, as_reference)
        binary_metadata = add_content_digest_to_metadata(
            dict(binary.metadata), content_digest
        )
        self._put_properties(storage_path, binary_metadata)
        logging.info(
            "RemoteStorageService - update_binary_content: Updated binary: %s",
            storage_path,
        )
        return self.get_binary(storage_path)

    def get_resource(self, storage_path):
        self._check_storage_path(storage_path)
        return self._descriptor_to_resource(self._get_descriptor(storage_path))

    def update_metadata(self, storage_path, metadata, replace_all=False):
        logging.debug(
            "RemoteStorageService - update_metadata: Request to update metadata of: %s",
            storage_path,
        )
        self._check_storage_path(storage_path)
        descriptor = self._get_descriptor(storage_path)
        old_metadata = self._descriptor_properties(descriptor)
        updated_metadata = merge_metadata(
            strip_content_digest(old_metadata),
            strip_content_digest(metadata),
            replace_all,
        )
        stored_metadata = dict(updated_metadata)
        if descriptor.get("type") == DATASTREAM:
            stored_metadata = add_content_digest_to_metadata(
                stored_metadata, obtain_content_digest(old_metadata)
            )
        self._put_properties(storage_path, stored_metadata)
        logging.info(
            "RemoteStorageService - update_metadata: Updated metadata of: %s",
            storage_path,
        )
        return updated_metadata

    def delete_resource(self, storage_path):
        logging.debug(
            "RemoteStorageService - delete_resource: Request to delete: %s", storage_path
        )
        self._check_storage_path(storage_path)
        self._request("DELETE", self._url(storage_path), storage_path)
        logging.info("RemoteStorageService - delete_resource: Deleted: %s", storage_path)

    def copy(self, from_service, from_storage_path, to_storage_path):
        self._check_storage_path(from_storage_path)
        self._check_storage_path(to_storage_path)
        if self._same_repository(from_service):
            self._request(
                "COPY",
                self._url(from_storage_path),
                from_storage_path,
                headers={"Destination": self._url(to_storage_path)},
            )
        else:
            root_entity = entity_class_of(from_service.get_resource(from_storage_path))
            copy_between_storage_services(
                from_service, from_storage_path, self, to_storage_path, root_entity
            )
        logging.info(
            "RemoteStorageService - copy: Copied %s to %s",
            from_storage_path,
            to_storage_path,
        )

    def move(self, from_service, from_storage_path, to_storage_path):
        self._check_storage_path(from_storage_path)
        self._check_storage_path(to_storage_path)
        if self._same_repository(from_service):
            self._request(
                "MOVE",
                self._url(from_storage_path),
                from_storage_path,
                headers={"Destination": self._url(to_storage_path)},
            )
        else:
            root_entity = entity_class_of(from_service.get_resource(from_storage_path))
            move_between_storage_services(
                from_service, from_storage_path, self, to_storage_path, root_entity
            )
        logging.info(
            "RemoteStorageService - move: Moved %s to %s",
            from_storage_path,
            to_storage_path,
        )

    # RemoteStorageService Protocol Methods

    def _url(self, storage_path, suffix=""):
        """Build the repository URL of an entity, escaping every segment."""
        if storage_path is None:
            return f"{self.rest_url}/{suffix}"
        quoted_path = "/".join(quote(segment, safe="") for segment in storage_path.segments)
        if suffix:
            return f"{self.rest_url}/{quoted_path}/{suffix}"
        return f"{self.rest_url}/{quoted_path}"

    def _request(self, method, url, storage_path, **kwargs):
        """Send a request and translate every failure into a storage exception.

        :return: httpx.Response - A successful response.
        """
        try:
            response = self.client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as err:
            exception_string = (
                f"RemoteStorageService - {method} {storage_path}: Repository timed out"
                + f" after {self.timeout}s. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        except httpx.HTTPError as err:
            exception_string = (
                f"RemoteStorageService - {method} {storage_path}: Request failed."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        self._check_response(response, method, storage_path)
        return response

    @staticmethod
    def _check_response(response, method, storage_path):
        if response.is_success:
            return
        exception_string = (
            f"RemoteStorageService - {method} {storage_path}: Repository answered"
            + f" {response.status_code}: {response.text}"
        )
        logging.error(exception_string)
        raise exception_for_status(response.status_code, exception_string)

    @staticmethod
    def _json(response, storage_path):
        try:
            return response.json()
        except ValueError as err:
            exception_string = (
                f"RemoteStorageService - {storage_path}: Repository answered with an"
                + f" invalid document. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

    def _get_descriptor(self, storage_path):
        response = self._request(
            "GET",
            self._url(storage_path),
            storage_path,
            headers={"Accept": "application/json"},
        )
        return self._json(response, storage_path)

    def _create_object(self, storage_path, metadata):
        self._request(
            "PUT",
            self._url(storage_path),
            storage_path,
            json={
                "type": OBJECT,
                "properties": self._properties_document(strip_content_digest(metadata)),
            },
        )

    def _put_content(self, storage_path, payload, as_reference):
        """Upload the content of a datastream, returning its digests."""
        content_digest = compute_payload_digests(payload, DEFAULT_ALGO_LIST)
        if as_reference:
            self._request(
                "PUT",
                self._url(storage_path, "fcr:content"),
                storage_path,
                json={"externalContent": payload.get_uri()},
                headers={"Content-Type": EXTERNAL_BODY},
            )
            return content_digest
        with payload.create_input_stream() as stream:
            self._request(
                "PUT",
                self._url(storage_path, "fcr:content"),
                storage_path,
                content=_iter_chunks(stream),
                headers={"Content-Type": "application/octet-stream"},
            )
        return content_digest

    def _put_properties(self, storage_path, metadata):
        self._request(
            "PUT",
            self._url(storage_path, "fcr:metadata"),
            storage_path,
            json={"properties": self._properties_document(metadata)},
        )

    def _open_content(self, storage_path):
        """Open a streaming response over the content of a datastream."""
        url = self._url(storage_path, "fcr:content")
        try:
            request = self.client.build_request("GET", url, timeout=self.timeout)
            response = self.client.send(request, stream=True)
        except httpx.TimeoutException as err:
            exception_string = (
                f"RemoteStorageService - GET {storage_path}: Repository timed out"
                + f" after {self.timeout}s. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        except httpx.HTTPError as err:
            exception_string = (
                f"RemoteStorageService - GET {storage_path}: Request failed."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        if not response.is_success:
            response.read()
            response.close()
            self._check_response(response, "GET", storage_path)
        return io.BufferedReader(_ResponseReader(response, storage_path))

    def _list_children(self, storage_path):
        """List the children of an object (or the containers, for None) page by page.
        The first page is requested right away so that a missing object fails the call;
        every further page is requested only when the iterator reaches it."""
        url = self._url(storage_path, "fcr:children")
        logging.debug(
            "RemoteStorageService - _list_children: Request to list children of: %s",
            storage_path,
        )
        first_page = self._get_children_page(url, storage_path, None)

        def generate_resources():
            page = first_page
            while True:
                for descriptor in page.get("children") or []:
                    yield self._descriptor_to_resource(descriptor)
                cursor = page.get("cursor")
                if not cursor:
                    break
                page = self._get_children_page(url, storage_path, cursor)

        return ClosableIterable(generate_resources())

    def _get_children_page(self, url, storage_path, cursor):
        params = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor
        response = self._request(
            "GET",
            url,
            storage_path,
            params=params,
            headers={"Accept": "application/json"},
        )
        return self._json(response, storage_path)

    def _get_typed_resource(self, storage_path, expected_type):
        descriptor = self._get_descriptor(storage_path)
        if descriptor.get("type") != expected_type:
            exception_string = (
                f"RemoteStorageService - {storage_path} is a {descriptor.get('type')},"
                + f" expected a {expected_type}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        return self._descriptor_to_resource(descriptor)

    def _descriptor_to_resource(self, descriptor):
        """Convert a repository descriptor into a `Container`, `Directory` or `Binary`."""
        try:
            storage_path = StoragePath.parse(descriptor["path"])
            resource_type = descriptor["type"]
        except (KeyError, TypeError) as err:
            exception_string = (
                "RemoteStorageService - _descriptor_to_resource: Invalid descriptor:"
                + f" {descriptor}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        metadata = self._descriptor_properties(descriptor)
        if resource_type == OBJECT:
            if storage_path.is_container_path():
                return Container(storage_path, strip_content_digest(metadata))
            return Directory(storage_path, strip_content_digest(metadata))
        if resource_type == DATASTREAM:
            return Binary(
                storage_path,
                strip_content_digest(metadata),
                RemoteContentPayload(self, storage_path, descriptor.get("external")),
                descriptor.get("size", 0),
                descriptor.get("external") is not None,
                obtain_content_digest(metadata),
            )
        exception_string = (
            "RemoteStorageService - _descriptor_to_resource: Unknown resource type:"
            + f" {resource_type}"
        )
        logging.error(exception_string)
        raise InternalError(exception_string)

    @staticmethod
    def _descriptor_properties(descriptor):
        properties = descriptor.get("properties") or {}
        metadata = {}
        for key, values in properties.items():
            if isinstance(values, str):
                values = [values]
            metadata[str(key)] = {str(value) for value in (values or [])}
        return metadata

    @staticmethod
    def _properties_document(metadata):
        return {key: sorted(values) for key, values in metadata.items()}

    def _same_repository(self, from_service):
        return (
            isinstance(from_service, RemoteStorageService)
            and from_service.repository_url == self.repository_url
        )

    @staticmethod
    def _check_storage_path(storage_path):
        if not isinstance(storage_path, StoragePath):
            exception_string = (
                "RemoteStorageService - a StoragePath must be supplied,"
                + f" got: {type(storage_path)}."
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    def _check_container_path(self, storage_path):
        self._check_storage_path(storage_path)
        if not storage_path.is_container_path():
            exception_string = (
                f"RemoteStorageService - Storage path is not a container path: {storage_path}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    def _check_nested_path(self, storage_path):
        self._check_storage_path(storage_path)
        if storage_path.is_container_path():
            exception_string = (
                f"RemoteStorageService - Storage path is a container path: {storage_path}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)


class RemoteContentPayload(ContentPayload):
    """Content of a datastream, fetched from the repository every time a stream is
    created."""

    def __init__(self, service, storage_path, external_uri=None):
        self.service = service
        self.storage_path = storage_path
        self.external_uri = external_uri

    def create_input_stream(self):
        return self.service._open_content(self.storage_path)

    def get_uri(self):
        if self.external_uri:
            return self.external_uri
        return self.service._url(self.storage_path, "fcr:content")

    def __repr__(self):
        return f"RemoteContentPayload({self.get_uri()!r})"


class _ResponseReader(io.RawIOBase):
    """Raw, read only stream over the body of a streaming `httpx.Response`. Closing the
    stream closes the response and releases its connection."""

    def __init__(self, response, storage_path):
        super().__init__()
        self._response = response
        self._storage_path = storage_path
        self._chunks = response.iter_bytes()
        self._buffer = b""

    def readable(self):
        return True

    def readinto(self, buffer):
        try:
            while not self._buffer:
                self._buffer = next(self._chunks)
        except StopIteration:
            return 0
        except httpx.HTTPError as err:
            exception_string = (
                f"RemoteStorageService - GET {self._storage_path}: Reading content failed."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        size = min(len(buffer), len(self._buffer))
        buffer[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size

    def close(self):
        if not self.closed:
            self._response.close()
        super().close()


def _iter_chunks(stream, chunk_size=65536):
    while True:
        data = stream.read(chunk_size)
        if not data:
            break
        yield data
