"""Core module for FileStorageService"""
import errno
import logging
import os
import shutil
import inspect
from tempfile import NamedTemporaryFile
from archivestore.cache import MetadataCache
from archivestore.digest import (
    add_content_digest_to_metadata,
    clean_algorithm,
    compute_content_digests,
    obtain_content_digest,
    strip_content_digest,
)
from archivestore.iterables import ClosableIterable
from archivestore.metadata import YamlMetadataSidecar, merge_metadata
from archivestore.model import Binary, Container, Directory, entity_class_of
from archivestore.payload import PathContentPayload
from archivestore.storage_config import (
    DEFAULT_ALGO_LIST,
    DIGEST_METADATA_KEYS,
    DIGEST_WINDOW_SIZE,
    METADATA_CACHE_SIZE,
    METADATA_CACHE_TTL,
)
from archivestore.storage_exceptions import (
    AlreadyExists,
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


class FileStorageService(StorageService):
    """FileStorageService keeps archival entities in a local directory tree. A storage
    path maps to a filesystem path by joining its segments under the store path:
    containers are the top-level directories, directories are nested directories and
    binaries are regular files. Metadata lives in YAML sidecar files inside hidden
    properties folders (see `archivestore.metadata`), which are never listed.

    Content and metadata are two separate filesystem operations. Writing a binary
    renames its content into place first and writes its sidecar second, so a crash
    between both steps leaves a binary without (up to date) metadata.

    :param dict properties: A Python dictionary with the following keys (and values):
        - store_path (str): Path to the base directory of the store.
        - store_digest_algorithms (list, optional): Digests computed on every write,
          any of "sha1" and "md5" (default: both).
        - store_digest_window_size (int, optional): Bytes mapped into memory at once
          when hashing files.
        - store_metadata_cache_size (int, optional): Sidecar maps kept in memory,
          0 disables the cache.
        - store_metadata_cache_ttl (float, optional): Seconds a cached map stays valid.
    :param YamlMetadataSidecar metadata_store: Sidecar store to use instead of the
        default one.
    """

    # Property (store configuration) requirements
    property_required_keys = ["store_path"]
    # Permissions settings for writing files and creating directories
    fmode = 0o664
    dmode = 0o755

    def __init__(self, properties=None, metadata_store=None):
        if not properties:
            exception_string = (
                "FileStorageService - Properties must be supplied."
                + f" Properties: {properties}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        checked_properties = self._validate_properties(properties)
        self.root = os.path.abspath(os.fspath(checked_properties["store_path"]))
        self.digest_algorithms = self._check_digest_algorithms(
            checked_properties.get("store_digest_algorithms", DEFAULT_ALGO_LIST)
        )
        self.digest_window_size = checked_properties.get(
            "store_digest_window_size", DIGEST_WINDOW_SIZE
        )
        self._check_integer(self.digest_window_size)

        if metadata_store is None:
            cache_size = checked_properties.get(
                "store_metadata_cache_size", METADATA_CACHE_SIZE
            )
            cache = None
            if cache_size:
                cache = MetadataCache(
                    cache_size,
                    checked_properties.get(
                        "store_metadata_cache_ttl", METADATA_CACHE_TTL
                    ),
                )
            metadata_store = YamlMetadataSidecar(cache=cache)
        self.metadata_store = metadata_store

        if not os.path.exists(self.root):
            self._create_path(self.root)
        logging.debug(
            "FileStorageService - Initialization success. Store root: %s", self.root
        )

    # Configuration and Related Methods

    def _validate_properties(self, properties):
        """Validate a properties dictionary by checking if it contains all the
        required keys and non-None values.

        :param dict properties: Dictionary containing FileStorageService properties.

        :raises KeyError: If key is missing from the required keys.
        :raises ValueError: If value is missing for a required key.

        :return: The given properties object (that has been validated).
        :rtype: dict
        """
        if not isinstance(properties, dict):
            exception_string = (
                "FileStorageService - _validate_properties: Invalid argument -"
                + " expected a dictionary."
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)

        for key in self.property_required_keys:
            if key not in properties:
                exception_string = (
                    "FileStorageService - _validate_properties: Missing required"
                    + f" key: {key}."
                )
                logging.debug(exception_string)
                raise KeyError(exception_string)
            if properties.get(key) is None:
                exception_string = (
                    "FileStorageService - _validate_properties: Value for key:"
                    + f" {key} is none."
                )
                logging.debug(exception_string)
                raise ValueError(exception_string)
        return properties

    @staticmethod
    def _check_digest_algorithms(algorithms):
        """Only algorithms with a reserved metadata key can be stored on write."""
        checked_algorithms = []
        for algorithm in algorithms:
            checked_algorithm = clean_algorithm(algorithm)
            if checked_algorithm not in DIGEST_METADATA_KEYS:
                exception_string = (
                    "FileStorageService - _check_digest_algorithms: no reserved metadata"
                    + f" key for algorithm: {algorithm}. Must be one of:"
                    + f" {', '.join(DIGEST_METADATA_KEYS)}"
                )
                logging.error(exception_string)
                raise ValueError(exception_string)
            checked_algorithms.append(checked_algorithm)
        return checked_algorithms

    # Public API / StorageService Interface Methods

    def list_containers(self):
        logging.debug("FileStorageService - list_containers: Request to list containers")
        try:
            entries = os.scandir(self.root)
        except OSError as err:
            exception_string = (
                f"FileStorageService - list_containers: Could not list {self.root}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

        def generate_containers():
            for entry in entries:
                if self.metadata_store.is_properties_folder(entry.name):
                    continue
                if not entry.is_dir():
                    continue
                yield self._convert_path_to_container(entry.path)

        return ClosableIterable(generate_containers(), on_close=entries.close)

    def create_container(self, storage_path, metadata):
        logging.debug(
            "FileStorageService - create_container: Request to create container: %s",
            storage_path,
        )
        self._check_container_path(storage_path)
        container_path = self.get_entity_path(storage_path)
        self._create_directory_entity(container_path, metadata)
        logging.info(
            "FileStorageService - create_container: Created container: %s", storage_path
        )
        return self._convert_path_to_container(container_path)

    def get_container(self, storage_path):
        self._check_container_path(storage_path)
        container_path = self.get_entity_path(storage_path)
        if not os.path.isdir(container_path):
            exception_string = (
                f"FileStorageService - get_container: Container not found: {storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)
        return self._convert_path_to_container(container_path)

    def delete_container(self, storage_path):
        logging.debug(
            "FileStorageService - delete_container: Request to delete container: %s",
            storage_path,
        )
        self._check_container_path(storage_path)
        self._delete_path(self.get_entity_path(storage_path))
        logging.info(
            "FileStorageService - delete_container: Deleted container: %s", storage_path
        )

    def list_resources_under_container(self, storage_path):
        self._check_container_path(storage_path)
        return self._list_path(self.get_entity_path(storage_path))

    def create_directory(self, storage_path, metadata):
        logging.debug(
            "FileStorageService - create_directory: Request to create directory: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        directory_path = self.get_entity_path(storage_path)
        self._check_parent_exists(storage_path)
        self._create_directory_entity(directory_path, metadata)
        logging.info(
            "FileStorageService - create_directory: Created directory: %s", storage_path
        )
        return self._convert_path_to_resource(directory_path)

    def get_directory(self, storage_path):
        self._check_nested_path(storage_path)
        directory_path = self.get_entity_path(storage_path)
        self._check_entity_kind(directory_path, storage_path, expect_directory=True)
        return self._convert_path_to_resource(directory_path)

    def list_resources_under_directory(self, storage_path):
        self._check_nested_path(storage_path)
        directory_path = self.get_entity_path(storage_path)
        self._check_entity_kind(directory_path, storage_path, expect_directory=True)
        return self._list_path(directory_path)

    def create_binary(self, storage_path, metadata, payload, as_reference=False):
        logging.debug(
            "FileStorageService - create_binary: Request to create binary: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        self._check_as_reference(as_reference)
        self._check_parent_exists(storage_path)
        binary_path = self.get_entity_path(storage_path)
        if os.path.lexists(binary_path):
            exception_string = (
                f"FileStorageService - create_binary: Binary already exists: {storage_path}"
            )
            logging.error(exception_string)
            raise AlreadyExists(exception_string)

        content_digest = self._put_content(binary_path, payload)
        binary_metadata = add_content_digest_to_metadata(
            strip_content_digest(metadata), content_digest
        )
        self.metadata_store.write_metadata(
            binary_path, binary_metadata, replace_all=True, is_directory=False
        )
        logging.info(
            "FileStorageService - create_binary: Created binary: %s", storage_path
        )
        return self._convert_path_to_resource(binary_path)

    def get_binary(self, storage_path):
        self._check_nested_path(storage_path)
        binary_path = self.get_entity_path(storage_path)
        self._check_entity_kind(binary_path, storage_path, expect_directory=False)
        return self._convert_path_to_resource(binary_path)

    def update_binary_content(
        self, storage_path, payload, as_reference=False, create_if_not_exists=False
    ):
        logging.debug(
            "FileStorageService - update_binary_content: Request to update binary: %s",
            storage_path,
        )
        self._check_nested_path(storage_path)
        self._check_as_reference(as_reference)
        binary_path = self.get_entity_path(storage_path)
        if not os.path.lexists(binary_path) and create_if_not_exists:
            return self.create_binary(storage_path, {}, payload, as_reference)
        self._check_entity_kind(binary_path, storage_path, expect_directory=False)

        content_digest = self._put_content(binary_path, payload)
        old_metadata = self.metadata_store.read_metadata(binary_path, is_directory=False)
        binary_metadata = add_content_digest_to_metadata(
            strip_content_digest(old_metadata), content_digest
        )
        self.metadata_store.write_metadata(
            binary_path, binary_metadata, replace_all=True, is_directory=False
        )
        logging.info(
            "FileStorageService - update_binary_content: Updated binary: %s",
            storage_path,
        )
        return self._convert_path_to_resource(binary_path)

    def get_resource(self, storage_path):
        self._check_storage_path(storage_path)
        entity_path = self.get_entity_path(storage_path)
        if not os.path.lexists(entity_path):
            exception_string = (
                f"FileStorageService - get_resource: Nothing found at: {storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)
        if storage_path.is_container_path():
            return self.get_container(storage_path)
        return self._convert_path_to_resource(entity_path)

    def update_metadata(self, storage_path, metadata, replace_all=False):
        logging.debug(
            "FileStorageService - update_metadata: Request to update metadata of: %s",
            storage_path,
        )
        self._check_storage_path(storage_path)
        entity_path = self.get_entity_path(storage_path)
        if not os.path.lexists(entity_path):
            exception_string = (
                f"FileStorageService - update_metadata: Nothing found at: {storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)
        is_directory = os.path.isdir(entity_path)
        old_metadata = self.metadata_store.read_metadata(entity_path, is_directory)
        # Digests only change through the content write path
        updated_metadata = merge_metadata(
            strip_content_digest(old_metadata),
            strip_content_digest(metadata),
            replace_all,
        )
        stored_metadata = dict(updated_metadata)
        if not is_directory:
            stored_metadata = add_content_digest_to_metadata(
                stored_metadata, obtain_content_digest(old_metadata)
            )
        self.metadata_store.write_metadata(
            entity_path, stored_metadata, replace_all=True, is_directory=is_directory
        )
        logging.info(
            "FileStorageService - update_metadata: Updated metadata of: %s", storage_path
        )
        return updated_metadata

    def delete_resource(self, storage_path):
        logging.debug(
            "FileStorageService - delete_resource: Request to delete: %s", storage_path
        )
        self._check_storage_path(storage_path)
        self._delete_path(self.get_entity_path(storage_path))
        logging.info("FileStorageService - delete_resource: Deleted: %s", storage_path)

    def copy(self, from_service, from_storage_path, to_storage_path):
        logging.debug(
            "FileStorageService - copy: Request to copy %s to %s",
            from_storage_path,
            to_storage_path,
        )
        self._check_storage_path(from_storage_path)
        self._check_storage_path(to_storage_path)
        if self._shares_layout(from_service):
            source_path = from_service.get_entity_path(from_storage_path)
            target_path = self._prepare_transfer(
                source_path, from_storage_path, to_storage_path
            )
            self._copy_path(source_path, target_path)
        else:
            root_entity = entity_class_of(from_service.get_resource(from_storage_path))
            copy_between_storage_services(
                from_service, from_storage_path, self, to_storage_path, root_entity
            )
        logging.info(
            "FileStorageService - copy: Copied %s to %s", from_storage_path, to_storage_path
        )

    def move(self, from_service, from_storage_path, to_storage_path):
        logging.debug(
            "FileStorageService - move: Request to move %s to %s",
            from_storage_path,
            to_storage_path,
        )
        self._check_storage_path(from_storage_path)
        self._check_storage_path(to_storage_path)
        if self._shares_layout(from_service):
            source_path = from_service.get_entity_path(from_storage_path)
            target_path = self._prepare_transfer(
                source_path, from_storage_path, to_storage_path
            )
            self._move_path(from_service, source_path, target_path)
        else:
            root_entity = entity_class_of(from_service.get_resource(from_storage_path))
            move_between_storage_services(
                from_service, from_storage_path, self, to_storage_path, root_entity
            )
        logging.info(
            "FileStorageService - move: Moved %s to %s", from_storage_path, to_storage_path
        )

    # FileStorageService Path Resolution

    def get_entity_path(self, storage_path):
        """Resolve the filesystem path of an entity: the storage path segments joined
        under the store path.

        :param StoragePath storage_path: Storage path of the entity.

        :return: str - Absolute path of the entity.
        """
        return os.path.join(self.root, *storage_path.segments)

    def _relative_storage_path(self, path):
        relative_path = os.path.relpath(path, self.root)
        return StoragePath(relative_path.split(os.sep))

    # FileStorageService Utility & Supporting Methods

    def _create_directory_entity(self, directory_path, metadata):
        """Create a container/directory on disk along with its properties folder and
        sidecar."""
        try:
            os.mkdir(directory_path, self.dmode)
        except FileExistsError as err:
            exception_string = (
                "FileStorageService - _create_directory_entity: Entity already exists:"
                + f" {directory_path}"
            )
            logging.error(exception_string)
            raise AlreadyExists(exception_string) from err
        except FileNotFoundError as err:
            exception_string = (
                "FileStorageService - _create_directory_entity: Parent does not exist:"
                + f" {directory_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string) from err
        except OSError as err:
            exception_string = (
                "FileStorageService - _create_directory_entity: Could not create"
                + f" {directory_path}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        self.metadata_store.create_properties_directory(directory_path)
        self.metadata_store.write_metadata(
            directory_path,
            strip_content_digest(metadata),
            replace_all=True,
            is_directory=True,
        )

    def _put_content(self, binary_path, payload):
        """Write the payload next to its final location, compute its digests and rename
        it into place.

        :param str binary_path: Final path of the binary.
        :param ContentPayload payload: Content to write.

        :return: dict - Algorithm -> hex digest of the written content.
        """
        parent = os.path.dirname(binary_path)
        tmp_directory = self.metadata_store.create_properties_directory(parent)
        tmp = self._mktmpfile(tmp_directory)
        tmp_file_completion_flag = False
        try:
            with tmp as tmp_file, payload.create_input_stream() as in_stream:
                shutil.copyfileobj(in_stream, tmp_file)
            content_digest = compute_content_digests(
                tmp.name, self.digest_algorithms, self.digest_window_size
            )
            os.replace(tmp.name, binary_path)
            tmp_file_completion_flag = True
            logging.debug(
                "FileStorageService - _put_content: Content written to: %s", binary_path
            )
            return content_digest
        except OSError as err:
            exception_string = (
                f"FileStorageService - _put_content: Could not write {binary_path}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        finally:
            if not tmp_file_completion_flag and os.path.exists(tmp.name):
                os.remove(tmp.name)

    def _mktmpfile(self, path):
        """Create a temporary file at the given path ready to be written.

        :param str path: Path to the file location.

        :return: file object - object with a file-like interface.
        """
        tmp = NamedTemporaryFile(dir=path, prefix=".tmp", delete=False)

        # Ensure tmp file is created with desired permissions
        if self.fmode is not None:
            oldmask = os.umask(0)
            try:
                os.chmod(tmp.name, self.fmode)
            finally:
                os.umask(oldmask)
        return tmp

    def _list_path(self, path):
        """List the entities directly under a directory, skipping the properties folder.

        :param str path: Path to the directory.

        :return: ClosableIterable - Lazy sequence of `Directory` and `Binary`.
        """
        try:
            entries = os.scandir(path)
        except FileNotFoundError as err:
            exception_string = (
                "FileStorageService - _list_path: Could not list contents of entity"
                + f" because it doesn't exist: {path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string) from err
        except OSError as err:
            exception_string = (
                f"FileStorageService - _list_path: Could not list contents of: {path}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

        def generate_resources():
            for entry in entries:
                if self.metadata_store.is_properties_folder(entry.name):
                    continue
                yield self._convert_path_to_resource(entry.path)

        return ClosableIterable(generate_resources(), on_close=entries.close)

    def _convert_path_to_resource(self, path):
        """Convert a path under a container into a `Directory` or `Binary`."""
        storage_path = self._relative_storage_path(path)
        try:
            if os.path.isdir(path):
                metadata = self.metadata_store.read_metadata(path, is_directory=True)
                return Directory(storage_path, strip_content_digest(metadata))
            metadata = self.metadata_store.read_metadata(path, is_directory=False)
            size_in_bytes = os.path.getsize(path)
        except FileNotFoundError as err:
            exception_string = (
                f"FileStorageService - _convert_path_to_resource: Cannot find file or"
                + f" directory at {path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string) from err
        except OSError as err:
            exception_string = (
                "FileStorageService - _convert_path_to_resource: Could not read"
                + f" {path}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        return Binary(
            storage_path,
            strip_content_digest(metadata),
            PathContentPayload(path),
            size_in_bytes,
            False,
            obtain_content_digest(metadata),
        )

    def _convert_path_to_container(self, path):
        storage_path = self._relative_storage_path(path)
        if not os.path.isdir(path):
            exception_string = (
                f"FileStorageService - _convert_path_to_container: A file is not a"
                + f" container: {path}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string)
        metadata = self.metadata_store.read_metadata(path, is_directory=True)
        return Container(storage_path, strip_content_digest(metadata))

    def _shares_layout(self, from_service):
        """Whether entities of `from_service` can be copied/moved with plain filesystem
        operations (same backend and same sidecar layout)."""
        if not isinstance(from_service, FileStorageService):
            return False
        from_store = from_service.metadata_store
        return (
            from_store.properties_folder == self.metadata_store.properties_folder
            and from_store.properties_suffix == self.metadata_store.properties_suffix
        )

    def _prepare_transfer(self, source_path, from_storage_path, to_storage_path):
        """Check the source exists and the target is free, returning the target path."""
        if not os.path.lexists(source_path):
            exception_string = (
                "FileStorageService - _prepare_transfer: Source does not exist:"
                + f" {from_storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)
        if to_storage_path.is_container_path() and not os.path.isdir(source_path):
            exception_string = (
                "FileStorageService - _prepare_transfer: A binary cannot become a"
                + f" container: {from_storage_path} -> {to_storage_path}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        target_path = self.get_entity_path(to_storage_path)
        if os.path.lexists(target_path):
            exception_string = (
                "FileStorageService - _prepare_transfer: Cannot transfer because target"
                + f" path already exists: {to_storage_path}"
            )
            logging.error(exception_string)
            raise AlreadyExists(exception_string)
        if not to_storage_path.is_container_path():
            self._check_parent_exists(to_storage_path)
        return target_path

    def _copy_path(self, source_path, target_path):
        """Copy a file (content first, sidecar second) or mirror a directory tree
        (including every sidecar)."""
        try:
            if os.path.isdir(source_path):
                shutil.copytree(source_path, target_path)
                self.metadata_store.forget_tree(target_path)
            else:
                shutil.copyfile(source_path, target_path)
                self.metadata_store.copy_metadata(source_path, target_path)
        except OSError as err:
            exception_string = (
                f"FileStorageService - _copy_path: Error while copying {source_path}"
                + f" into {target_path}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

    def _move_path(self, from_service, source_path, target_path):
        """Move a file or directory with an atomic rename, falling back to copy and
        delete across filesystems."""
        is_directory = os.path.isdir(source_path)
        try:
            os.rename(source_path, target_path)
        except OSError as err:
            if err.errno != errno.EXDEV:
                exception_string = (
                    f"FileStorageService - _move_path: Error while moving {source_path}"
                    + f" to {target_path}. Unexpected {err=}, {type(err)=}"
                )
                logging.error(exception_string)
                raise InternalError(exception_string) from err
            logging.debug(
                "FileStorageService - _move_path: %s is on another device, copying.",
                source_path,
            )
            self._copy_path(source_path, target_path)
            from_service._delete_path(source_path)
            return
        if is_directory:
            from_service.metadata_store.forget_tree(source_path)
            self.metadata_store.forget_tree(target_path)
        else:
            self.metadata_store.move_metadata(source_path, target_path)
            if from_service is not self:
                from_service.metadata_store.forget_tree(os.path.dirname(source_path))

    def _delete_path(self, path):
        """Delete a file along with its sidecar, or a directory with everything under
        it. A directory the filesystem refuses to remove in one call is removed with a
        post-order walk (files first, each directory after its children).

        :param str path: Path to the file or directory.
        """
        if not os.path.lexists(path):
            exception_string = f"FileStorageService - _delete_path: Could not delete {path}"
            logging.error(exception_string)
            raise NotFound(exception_string)
        try:
            if not os.path.isdir(path):
                os.remove(path)
                self.metadata_store.delete_metadata(path, is_directory=False)
                return
            try:
                os.rmdir(path)
            except OSError as err:
                if err.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                    raise
                for dirpath, dirnames, filenames in os.walk(path, topdown=False):
                    for filename in filenames:
                        os.remove(os.path.join(dirpath, filename))
                    for dirname in dirnames:
                        dirname_path = os.path.join(dirpath, dirname)
                        if os.path.islink(dirname_path):
                            os.remove(dirname_path)
                        else:
                            os.rmdir(dirname_path)
                os.rmdir(path)
            self.metadata_store.forget_tree(path)
        except OSError as err:
            exception_string = (
                f"FileStorageService - _delete_path: Could not delete entity {path}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

    def _create_path(self, path):
        """Physically create the folder path (and all intermediate ones) on disk.

        :param str path: The path to create.
        :raises AssertionError: If the path already exists but is not a directory.
        """
        try:
            os.makedirs(path, self.dmode)
        except FileExistsError:
            assert os.path.isdir(path), f"expected {path} to be a directory"

    def _check_parent_exists(self, storage_path):
        parent_path = self.get_entity_path(storage_path.parent)
        if not os.path.isdir(parent_path):
            exception_string = (
                "FileStorageService - _check_parent_exists: Parent does not exist for:"
                + f" {storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)

    def _check_entity_kind(self, entity_path, storage_path, expect_directory):
        """Raise `NotFound` if nothing exists at `entity_path`, `RequestInvalid` if it is
        not of the expected kind."""
        if not os.path.lexists(entity_path):
            exception_string = (
                f"FileStorageService - _check_entity_kind: Nothing found at: {storage_path}"
            )
            logging.error(exception_string)
            raise NotFound(exception_string)
        if os.path.isdir(entity_path) != expect_directory:
            expected = "directory" if expect_directory else "binary"
            exception_string = (
                f"FileStorageService - _check_entity_kind: {storage_path} is not a {expected}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    @staticmethod
    def _check_as_reference(as_reference):
        if as_reference:
            exception_string = (
                "FileStorageService - Binaries stored as reference are not supported"
                + " by the filesystem backend."
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    def _check_storage_path(self, storage_path):
        """Check whether the argument is a StoragePath that does not name the hidden
        properties folder; throws an exception if not."""
        if not isinstance(storage_path, StoragePath):
            method = inspect.stack()[1].function
            exception_string = (
                f"FileStorageService - {method}: a StoragePath must be supplied,"
                + f" got: {type(storage_path)}."
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        for segment in storage_path.segments:
            if self.metadata_store.is_properties_folder(segment):
                method = inspect.stack()[1].function
                exception_string = (
                    f"FileStorageService - {method}: '{segment}' is reserved for"
                    + f" metadata sidecars: {storage_path}"
                )
                logging.error(exception_string)
                raise RequestInvalid(exception_string)

    def _check_container_path(self, storage_path):
        self._check_storage_path(storage_path)
        if not storage_path.is_container_path():
            exception_string = (
                f"FileStorageService - Storage path is not a container path: {storage_path}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    def _check_nested_path(self, storage_path):
        self._check_storage_path(storage_path)
        if storage_path.is_container_path():
            exception_string = (
                f"FileStorageService - Storage path is a container path: {storage_path}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    @staticmethod
    def _check_integer(window_size):
        """Check whether a given argument is an integer and greater than 0;
        throw an exception if not.

        :param int window_size: Window size to check.
        """
        if not isinstance(window_size, int) or isinstance(window_size, bool):
            exception_string = (
                "FileStorageService - _check_integer: size given must be an integer."
                + f" Size: {window_size}. Arg Type: {type(window_size)}."
            )
            logging.error(exception_string)
            raise TypeError(exception_string)
        if window_size < 1:
            exception_string = "FileStorageService - _check_integer: size given must be > 0"
            logging.error(exception_string)
            raise ValueError(exception_string)
