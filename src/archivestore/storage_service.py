"""StorageService Interface"""
from abc import ABC, abstractmethod
import importlib
import importlib.metadata
import importlib.util


class StorageService(ABC):
    """StorageService is the uniform contract to create, read, update, delete, enumerate,
    copy and move archival entities (containers, directories and binaries) addressed by a
    `StoragePath`, independent of the technology that physically holds them.

    Every method raises only `StorageServiceException` subclasses (`NotFound`,
    `AlreadyExists`, `Forbidden`, `RequestInvalid`, `InternalError`); backend specific
    errors never cross this interface. Operations are synchronous and no locking is
    provided across calls on the same path, callers coordinate concurrent writers.
    """

    @staticmethod
    def version():
        """Return the version number"""
        __version__ = importlib.metadata.version("archivestore")
        return __version__

    # Containers

    @abstractmethod
    def list_containers(self):
        """List the containers of the service.

        :return: ClosableIterable - Lazy sequence of `Container`.
        """
        raise NotImplementedError()

    @abstractmethod
    def create_container(self, storage_path, metadata):
        """Create a container with the given metadata.

        :param StoragePath storage_path: Single segment storage path.
        :param dict metadata: Metadata map (key -> set of values).

        :return: Container - The created container.
        """
        raise NotImplementedError()

    @abstractmethod
    def get_container(self, storage_path):
        """Retrieve a container.

        :param StoragePath storage_path: Single segment storage path.

        :return: Container
        """
        raise NotImplementedError()

    @abstractmethod
    def delete_container(self, storage_path):
        """Delete a container and everything under it.

        :param StoragePath storage_path: Single segment storage path.
        """
        raise NotImplementedError()

    @abstractmethod
    def list_resources_under_container(self, storage_path):
        """List the direct children (directories and binaries) of a container. Entries that
        belong to the storage layer's own metadata side-channel are never listed.

        :param StoragePath storage_path: Single segment storage path.

        :return: ClosableIterable - Lazy, single pass sequence of `Resource`.
        """
        raise NotImplementedError()

    # Directories

    @abstractmethod
    def create_directory(self, storage_path, metadata):
        """Create a directory under an existing container or directory.

        :param StoragePath storage_path: Storage path of the new directory.
        :param dict metadata: Metadata map (key -> set of values).

        :return: Directory - The created directory.
        """
        raise NotImplementedError()

    @abstractmethod
    def get_directory(self, storage_path):
        """Retrieve a directory.

        :param StoragePath storage_path: Storage path of the directory.

        :return: Directory
        """
        raise NotImplementedError()

    @abstractmethod
    def list_resources_under_directory(self, storage_path):
        """List the direct children of a directory.

        :param StoragePath storage_path: Storage path of the directory.

        :return: ClosableIterable - Lazy, single pass sequence of `Resource`.
        """
        raise NotImplementedError()

    # Binaries

    @abstractmethod
    def create_binary(self, storage_path, metadata, payload, as_reference=False):
        """Create a binary. The default digest set (SHA-1 and MD5) is computed from the
        payload and stored under the reserved digest metadata keys.

        :param StoragePath storage_path: Storage path of the new binary.
        :param dict metadata: Metadata map (key -> set of values).
        :param ContentPayload payload: Content of the binary.
        :param bool as_reference: Store only a reference to the payload URI instead of
            the bytes, where the backend supports it.

        :return: Binary - The created binary.
        """
        raise NotImplementedError()

    @abstractmethod
    def get_binary(self, storage_path):
        """Retrieve a binary.

        :param StoragePath storage_path: Storage path of the binary.

        :return: Binary
        """
        raise NotImplementedError()

    @abstractmethod
    def update_binary_content(
        self, storage_path, payload, as_reference=False, create_if_not_exists=False
    ):
        """Replace the content of a binary and refresh its digests, keeping its other
        metadata.

        :param StoragePath storage_path: Storage path of the binary.
        :param ContentPayload payload: New content.
        :param bool as_reference: See `create_binary`.
        :param bool create_if_not_exists: Create the binary when it does not exist
            instead of raising `NotFound`.

        :return: Binary - The updated binary.
        """
        raise NotImplementedError()

    # Any entity

    @abstractmethod
    def get_resource(self, storage_path):
        """Retrieve whatever entity lives at a storage path.

        :param StoragePath storage_path: Storage path of the entity.

        :return: Resource - A `Container`, `Directory` or `Binary`.
        """
        raise NotImplementedError()

    @abstractmethod
    def update_metadata(self, storage_path, metadata, replace_all=False):
        """Update the metadata of any entity.

        :param StoragePath storage_path: Storage path of the entity.
        :param dict metadata: Metadata map (key -> set of values).
        :param bool replace_all: True replaces the stored map; False stores the union of
            both maps (values of keys found in both are unioned).

        :return: dict - The metadata map now stored.
        """
        raise NotImplementedError()

    @abstractmethod
    def delete_resource(self, storage_path):
        """Delete an entity together with its metadata, recursively for containers and
        directories. Raises `NotFound` when nothing exists at the path.

        :param StoragePath storage_path: Storage path of the entity.
        """
        raise NotImplementedError()

    # Transfers

    @abstractmethod
    def copy(self, from_service, from_storage_path, to_storage_path):
        """Copy an entity (with everything under it) from another (or the same) service
        into this service.

        :param StorageService from_service: Source storage service.
        :param StoragePath from_storage_path: Source storage path.
        :param StoragePath to_storage_path: Destination storage path in this service.
        """
        raise NotImplementedError()

    @abstractmethod
    def move(self, from_service, from_storage_path, to_storage_path):
        """Move an entity (with everything under it) from another (or the same) service
        into this service. The source no longer exists afterwards.

        :param StorageService from_service: Source storage service.
        :param StoragePath from_storage_path: Source storage path.
        :param StoragePath to_storage_path: Destination storage path in this service.
        """
        raise NotImplementedError()


class StorageServiceFactory:
    """A factory class for creating `StorageService`-like objects.

    The factory retrieves a `StorageService` object based on a given module
    (e.g., "archivestore.filestorage") and class name (e.g., "FileStorageService").
    """

    @staticmethod
    def get_storage_service(module_name, class_name, properties=None):
        """Get a `StorageService`-like object based on the specified `module_name` and
        `class_name`.

        :param str module_name: Name of the module (e.g., "archivestore.filestorage").
        :param str class_name: Name of the class in the given module
            (e.g., "FileStorageService").
        :param dict properties: Properties of the storage service. Example:
            {
                "store_path": "/var/archivestore",
                "store_digest_algorithms": ["sha1", "md5"],
            }

        :return: StorageService - A storage service object.

        :raises ModuleNotFoundError: If the module is not found.
        :raises AttributeError: If the class does not exist within the module.
        """
        # Validate module
        if importlib.util.find_spec(module_name) is None:
            raise ModuleNotFoundError(f"No module found for '{module_name}'")

        imported_module = importlib.import_module(module_name)

        # If class is not part of module, raise error
        if hasattr(imported_module, class_name):
            storage_service_class = getattr(imported_module, class_name)
            return storage_service_class(properties=properties)
        raise AttributeError(
            f"Class name '{class_name}' is not an attribute of module '{module_name}'"
        )
