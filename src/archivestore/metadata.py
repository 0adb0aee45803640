"""Sidecar metadata for entities stored on a filesystem.

The metadata of every file and directory lives in a hidden properties folder next to
it, as a YAML document mapping each key to a list of values:

    AIP/123/data.txt   ->  AIP/123/.properties/data.txt.properties.yaml
    AIP/123            ->  AIP/123/.properties/.properties.yaml

Where a sidecar lives is a pure function of the entity path (see `get_properties_path`)
and is resolved independently of where the content lives.
"""
import datetime
import logging
import os
import shutil
from tempfile import NamedTemporaryFile
import yaml
from archivestore.model import copy_metadata_map
from archivestore.storage_config import PROPERTIES_FOLDER, PROPERTIES_SUFFIX
from archivestore.storage_exceptions import AlreadyExists, InternalError


def merge_metadata(old_metadata, new_metadata, replace_all=False):
    """Combine a stored metadata map with a new one.

    :param dict old_metadata: Metadata currently stored.
    :param dict new_metadata: Metadata supplied by the caller.
    :param bool replace_all: True discards `old_metadata` entirely; False keeps every
        key of both maps and, for keys found in both, the union of their values.

    :return: dict - The metadata map to store.
    """
    if replace_all:
        return copy_metadata_map(new_metadata)
    metadata = copy_metadata_map(old_metadata)
    for key, values in copy_metadata_map(new_metadata).items():
        metadata.setdefault(key, set()).update(values)
    return metadata


def coerce_metadata_value(key, value):
    """Convert a value loaded from a sidecar into a set of strings. Older sidecars hold
    plain scalars (booleans, dates and numbers) rather than lists of strings.

    :param str key: Metadata key (for logging purposes).
    :param value: Value as loaded by the YAML parser.

    :return: set - Values as strings.
    """
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set, frozenset)):
        return {_coerce_scalar(key, item) for item in value if item is not None}
    return {_coerce_scalar(key, value)}


def _coerce_scalar(key, value):
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return str(value)
    logging.warning(
        "YamlMetadataSidecar - Unsupported value class for key '%s': %s",
        key,
        type(value).__name__,
    )
    return str(value)


class YamlMetadataSidecar:
    """Reads and writes sidecar metadata documents in YAML.

    :param str properties_folder: Name of the hidden folder holding sidecars.
    :param str properties_suffix: Suffix appended to an entity's file name.
    :param MetadataCache cache: Optional cache of loaded maps.
    """

    def __init__(
        self,
        properties_folder=PROPERTIES_FOLDER,
        properties_suffix=PROPERTIES_SUFFIX,
        cache=None,
    ):
        self.properties_folder = properties_folder
        self.properties_suffix = properties_suffix
        self.cache = cache

    def get_properties_path(self, path, is_directory=None):
        """Return the path of the sidecar document of an entity.

        :param path: Path to the file or directory.
        :type path: str, os.PathLike
        :param bool is_directory: Kind of the entity; looked up on disk when None.

        :return: str - Path to the sidecar document.
        """
        path = os.fspath(path)
        if is_directory is None:
            is_directory = os.path.isdir(path)
        if is_directory:
            return os.path.join(path, self.properties_folder, self.properties_suffix)
        parent, name = os.path.split(path)
        return os.path.join(parent, self.properties_folder, name + self.properties_suffix)

    def is_properties_folder(self, name):
        """Whether a directory entry name is the hidden properties folder."""
        return os.path.basename(os.fspath(name)) == self.properties_folder

    def create_properties_directory(self, directory):
        """Create the properties folder inside `directory` if it does not exist yet."""
        properties_directory = os.path.join(directory, self.properties_folder)
        try:
            os.makedirs(properties_directory, exist_ok=True)
        except OSError as err:
            exception_string = (
                "YamlMetadataSidecar - create_properties_directory: Cannot create"
                + f" {properties_directory}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        return properties_directory

    def read_metadata(self, path, is_directory=None):
        """Read the metadata of an entity. An entity without a sidecar has no metadata.

        :param path: Path to the file or directory.
        :param bool is_directory: Kind of the entity; looked up on disk when None.

        :return: dict - key -> set of values.
        """
        properties = self.get_properties_path(path, is_directory)
        if self.cache is not None:
            cached_metadata = self.cache.get(properties)
            if cached_metadata is not None:
                return cached_metadata
        metadata = self._read_metadata_from_path(properties)
        if self.cache is not None:
            self.cache.put(properties, metadata)
        return metadata

    @staticmethod
    def _read_metadata_from_path(properties):
        if not os.path.exists(properties):
            return {}
        try:
            with open(properties, "r", encoding="utf-8") as properties_file:
                yaml_data = yaml.safe_load(properties_file)
        except (OSError, yaml.YAMLError) as err:
            exception_string = (
                "YamlMetadataSidecar - read_metadata: Could not load from properties file"
                + f" {properties}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err

        if yaml_data is None:
            return {}
        if not isinstance(yaml_data, dict):
            exception_string = (
                "YamlMetadataSidecar - read_metadata: Could not load properties as a map"
                + f" from {properties}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string)
        return {
            str(key): coerce_metadata_value(key, value)
            for key, value in yaml_data.items()
        }

    def write_metadata(self, path, metadata, replace_all=False, is_directory=None):
        """Write the metadata of an entity, creating its sidecar when needed.

        :param path: Path to the file or directory.
        :param dict metadata: Metadata to write.
        :param bool replace_all: True replaces the stored map with `metadata`; False
            merges both (union of keys and of values per key).
        :param bool is_directory: Kind of the entity; looked up on disk when None.

        :return: dict - The metadata map that was stored.
        """
        properties = self.get_properties_path(path, is_directory)
        old_metadata = {} if replace_all else self.read_metadata(path, is_directory)
        merged_metadata = merge_metadata(old_metadata, metadata, replace_all)
        self._write_metadata_to_path(properties, merged_metadata)
        return merged_metadata

    def _write_metadata_to_path(self, properties, metadata):
        properties_directory = os.path.dirname(properties)
        os.makedirs(properties_directory, exist_ok=True)
        yaml_data = {key: sorted(values) for key, values in metadata.items()}
        tmp_name = None
        try:
            # Written next to the sidecar and renamed so a reader never sees half a file
            with NamedTemporaryFile(
                "w",
                dir=properties_directory,
                prefix=".tmp",
                suffix=".yaml",
                encoding="utf-8",
                delete=False,
            ) as tmp_file:
                tmp_name = tmp_file.name
                yaml.safe_dump(
                    yaml_data,
                    tmp_file,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=True,
                )
            os.replace(tmp_name, properties)
        except (OSError, yaml.YAMLError) as err:
            exception_string = (
                "YamlMetadataSidecar - write_metadata: Could not write properties back to"
                + f" file {properties}. Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise InternalError(exception_string) from err
        finally:
            self._invalidate(properties)
        logging.debug(
            "YamlMetadataSidecar - write_metadata: Properties written to %s", properties
        )

    def copy_metadata(self, source, target, replace_existing=False, is_directory=False):
        """Copy the sidecar of `source` to become the sidecar of `target`. Nothing is
        copied when `source` has no sidecar."""
        self._transfer_metadata(source, target, replace_existing, is_directory, True)

    def move_metadata(self, source, target, replace_existing=False, is_directory=False):
        """Move the sidecar of `source` to become the sidecar of `target`."""
        self._transfer_metadata(source, target, replace_existing, is_directory, False)

    def _transfer_metadata(self, source, target, replace_existing, is_directory, copy):
        source_properties = self.get_properties_path(source, is_directory)
        target_properties = self.get_properties_path(target, is_directory)
        if not os.path.exists(source_properties):
            return
        if not replace_existing and os.path.exists(target_properties):
            exception_string = (
                "YamlMetadataSidecar - transfer_metadata: target properties already"
                + f" exist: {target_properties}"
            )
            logging.error(exception_string)
            raise AlreadyExists(exception_string)
        try:
            os.makedirs(os.path.dirname(target_properties), exist_ok=True)
            if copy:
                shutil.copyfile(source_properties, target_properties)
            else:
                shutil.move(source_properties, target_properties)
        except OSError as err:
            exception_string = (
                f"YamlMetadataSidecar - transfer_metadata: Could not {'copy' if copy else 'move'}"
                + f" metadata from {source_properties} to {target_properties}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        finally:
            self._invalidate(source_properties)
            self._invalidate(target_properties)

    def delete_metadata(self, path, is_directory=False):
        """Delete the sidecar of an entity if it exists."""
        properties = self.get_properties_path(path, is_directory)
        try:
            if os.path.exists(properties):
                os.remove(properties)
        except OSError as err:
            exception_string = (
                f"YamlMetadataSidecar - delete_metadata: Could not delete {properties}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise InternalError(exception_string) from err
        finally:
            self._invalidate(properties)

    def forget_tree(self, directory):
        """Drop cached sidecars of every entity under `directory` (after it was removed
        or relocated as a whole)."""
        if self.cache is not None:
            self.cache.invalidate_prefix(os.path.join(os.fspath(directory), ""))

    def _invalidate(self, properties):
        if self.cache is not None:
            self.cache.invalidate(properties)
