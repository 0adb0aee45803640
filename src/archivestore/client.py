"""ArchiveStore Command Line App"""
import logging
import os
from argparse import ArgumentParser
from contextlib import closing
from pathlib import Path
import yaml
from archivestore.digest import compute_payload_digests
from archivestore.filestorage import FileStorageService
from archivestore.payload import PathContentPayload
from archivestore.storagepath import StoragePath


class ArchiveStoreParser:
    """Class to set up parsing arguments via argparse."""

    def __init__(self):
        """Initialize the argparse 'parser'."""

        program_name = "ArchiveStore Command Line Client"
        description = (
            "Command line tool to create, retrieve, update, delete, list, copy and move"
            + " containers, directories and binaries of a filesystem ArchiveStore."
        )
        epilog = "Storage paths are written as 'container/dir/.../name'"

        self.parser = ArgumentParser(
            prog=program_name,
            description=description,
            epilog=epilog,
        )

        # Add positional argument
        self.parser.add_argument("store_path", help="Path of the ArchiveStore")

        # Add optional arguments
        self.parser.add_argument(
            "-loglevel",
            dest="logging_level",
            help="Set logging level for the client",
        )
        self.parser.add_argument(
            "-config",
            dest="config_path",
            help="YAML file with additional store properties",
        )

        # Individual API call related optional arguments
        self.parser.add_argument(
            "-spath",
            dest="storage_path",
            help="Storage path of the entity to work with",
        )
        self.parser.add_argument(
            "-path",
            dest="file_path",
            help="Path of the file holding the content of a binary",
        )
        self.parser.add_argument(
            "-meta",
            dest="metadata",
            action="append",
            default=[],
            help="Metadata entry as key=value, may be repeated",
        )
        self.parser.add_argument(
            "-replaceall",
            dest="replace_all",
            action="store_true",
            help="Replace the whole metadata map instead of merging",
        )
        self.parser.add_argument(
            "-algo",
            dest="algorithm",
            help="Algorithm to work with",
        )
        self.parser.add_argument(
            "-dest_store",
            dest="destination_store_path",
            help="Path of the ArchiveStore to copy or move to",
        )
        self.parser.add_argument(
            "-dest_path",
            dest="destination_storage_path",
            help="Storage path in the destination ArchiveStore",
        )

        # Public API optional arguments
        self.parser.add_argument(
            "-createcontainer",
            dest="client_createcontainer",
            action="store_true",
            help="Flag to create a container",
        )
        self.parser.add_argument(
            "-createdirectory",
            dest="client_createdirectory",
            action="store_true",
            help="Flag to create a directory",
        )
        self.parser.add_argument(
            "-createbinary",
            dest="client_createbinary",
            action="store_true",
            help="Flag to create a binary from a file",
        )
        self.parser.add_argument(
            "-getbinary",
            dest="client_getbinary",
            action="store_true",
            help="Flag to retrieve the content of a binary",
        )
        self.parser.add_argument(
            "-list",
            dest="client_list",
            action="store_true",
            help="Flag to list containers, or the children of a storage path",
        )
        self.parser.add_argument(
            "-getmetadata",
            dest="client_getmetadata",
            action="store_true",
            help="Flag to retrieve the metadata of an entity",
        )
        self.parser.add_argument(
            "-updatemetadata",
            dest="client_updatemetadata",
            action="store_true",
            help="Flag to update the metadata of an entity",
        )
        self.parser.add_argument(
            "-getchecksum",
            dest="client_getchecksum",
            action="store_true",
            help="Flag to get the hex digest of a binary",
        )
        self.parser.add_argument(
            "-delete",
            dest="client_delete",
            action="store_true",
            help="Flag to delete an entity and everything under it",
        )
        self.parser.add_argument(
            "-copyto",
            dest="client_copyto",
            action="store_true",
            help="Flag to copy an entity to another ArchiveStore",
        )
        self.parser.add_argument(
            "-moveto",
            dest="client_moveto",
            action="store_true",
            help="Flag to move an entity to another ArchiveStore",
        )

    def load_store_properties(self, config_yaml):
        """Get and return the contents of a store properties file.

        :param str config_yaml: Path to the YAML file.

        :return: dict - Store properties, e.g.:
            - store_digest_algorithms (list): Digests computed on every write.
            - store_metadata_cache_size (int): Sidecar maps kept in memory.
        """
        if not os.path.exists(config_yaml):
            exception_string = (
                "ArchiveStoreParser - load_store_properties: Properties file not found:"
                + f" {config_yaml}"
            )
            raise FileNotFoundError(exception_string)
        with open(config_yaml, "r", encoding="utf-8") as file:
            yaml_data = yaml.safe_load(file)
        if yaml_data is None:
            return {}
        if not isinstance(yaml_data, dict):
            raise ValueError(
                f"Properties file must hold a mapping, found: {type(yaml_data)}"
            )
        return yaml_data

    def get_parser_args(self):
        """Get command line arguments."""
        return self.parser.parse_args()


class ArchiveStoreClient:
    """Create an ArchiveStore to use through the command line."""

    def __init__(self, properties):
        """Initialize the ArchiveStore client.

        :param dict properties: Properties of the filesystem store.
        """
        self.storage_service = FileStorageService(properties)
        logging.info("ArchiveStoreClient - Store opened at: %s", properties["store_path"])

    def create_binary(self, storage_path, file_path, metadata):
        """Create a binary from a file on disk."""
        return self.storage_service.create_binary(
            storage_path, metadata, PathContentPayload(file_path)
        )

    def list_resources(self, storage_path):
        """List containers, or the direct children of the given storage path.

        :return: list - Storage paths as strings.
        """
        if storage_path is None:
            resources = self.storage_service.list_containers()
        elif storage_path.is_container_path():
            resources = self.storage_service.list_resources_under_container(
                storage_path
            )
        else:
            resources = self.storage_service.list_resources_under_directory(
                storage_path
            )
        with closing(resources):
            return [str(resource.storage_path) for resource in resources]

    def get_checksum(self, storage_path, algorithm):
        """Calculate the hex digest of a binary's content.

        :return: str - Hex digest.
        """
        binary = self.storage_service.get_binary(storage_path)
        content_digest = compute_payload_digests(binary.content, [algorithm])
        return next(iter(content_digest.values()))

    def transfer(self, storage_path, destination_store_path, destination_path, move):
        """Copy or move an entity to another filesystem store."""
        destination = FileStorageService({"store_path": destination_store_path})
        if move:
            destination.move(self.storage_service, storage_path, destination_path)
        else:
            destination.copy(self.storage_service, storage_path, destination_path)


def parse_metadata(entries):
    """Turn repeated `key=value` entries into a metadata map.

    :param list entries: Entries as strings.

    :return: dict - Metadata map (key -> set of values).
    """
    metadata = {}
    for entry in entries:
        key, separator, value = entry.partition("=")
        if not separator or not key:
            raise ValueError(f"Metadata entry must be written as key=value: {entry}")
        metadata.setdefault(key, set()).add(value)
    return metadata


def format_metadata(metadata):
    """Render a metadata map with one `key: values` line per key."""
    return "\n".join(
        f"{key}: {', '.join(sorted(values))}" for key, values in sorted(metadata.items())
    )


def main():
    """Entry point of the ArchiveStore client."""

    parser = ArchiveStoreParser()
    args = parser.get_parser_args()

    store_path = getattr(args, "store_path")
    # Setup logging, create log file if it doesn't already exist
    archivestore_py_log = store_path + "/python_client.log"
    python_log_file_path = Path(archivestore_py_log)
    if not os.path.exists(python_log_file_path):
        python_log_file_path.parent.mkdir(parents=True, exist_ok=True)
        open(python_log_file_path, "w", encoding="utf-8").close()
    # Check for logging level
    logging_level_arg = getattr(args, "logging_level")
    if logging_level_arg is None:
        logging_level = "INFO"
    else:
        logging_level = logging_level_arg
    logging.basicConfig(
        filename=python_log_file_path,
        level=logging_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Collect arguments to process
    config_path = getattr(args, "config_path")
    props = {}
    if config_path is not None:
        props = parser.load_store_properties(config_path)
    props["store_path"] = store_path
    storage_path_arg = getattr(args, "storage_path")
    storage_path = None
    if storage_path_arg is not None:
        storage_path = StoragePath.parse(storage_path_arg)
    file_path = getattr(args, "file_path")
    metadata = parse_metadata(getattr(args, "metadata"))
    algorithm = getattr(args, "algorithm")
    archivestore_c = ArchiveStoreClient(props)
    storage_service = archivestore_c.storage_service

    if getattr(args, "client_list"):
        for resource_path in archivestore_c.list_resources(storage_path):
            print(resource_path)
        return

    # Every other call works with a storage path
    if storage_path is None:
        raise ValueError("'-spath' option is required")

    if getattr(args, "client_createcontainer"):
        container = storage_service.create_container(storage_path, metadata)
        print(f"Container Created: {container.storage_path}")

    elif getattr(args, "client_createdirectory"):
        directory = storage_service.create_directory(storage_path, metadata)
        print(f"Directory Created: {directory.storage_path}")

    elif getattr(args, "client_createbinary"):
        if file_path is None:
            raise ValueError("'-path' option is required")
        binary = archivestore_c.create_binary(storage_path, file_path, metadata)
        print(f"Binary Created: {binary.storage_path}")
        print(f"Size (bytes): {binary.size_in_bytes}")
        for digest_algorithm, hex_digest in sorted(binary.content_digest.items()):
            print(f"{digest_algorithm}: {hex_digest}")

    elif getattr(args, "client_getbinary"):
        # Retrieve binary content and display the first 1000 bytes
        binary = storage_service.get_binary(storage_path)
        with binary.content.create_input_stream() as binary_stream:
            binary_content = binary_stream.read(1000).decode("utf-8", errors="replace")
        print(binary_content)
        print("...\n<-- Truncated for Display Purposes -->")

    elif getattr(args, "client_getmetadata"):
        resource = storage_service.get_resource(storage_path)
        print(format_metadata(resource.metadata))

    elif getattr(args, "client_updatemetadata"):
        updated_metadata = storage_service.update_metadata(
            storage_path, metadata, getattr(args, "replace_all")
        )
        print(format_metadata(updated_metadata))

    elif getattr(args, "client_getchecksum"):
        if algorithm is None:
            raise ValueError("'-algo' option is required")
        digest = archivestore_c.get_checksum(storage_path, algorithm)
        print(f"storage path: {storage_path}")
        print(f"algorithm: {algorithm}")
        print(f"Checksum/Hex Digest: {digest}")

    elif getattr(args, "client_delete"):
        storage_service.delete_resource(storage_path)
        print(f"Deleted: {storage_path}")

    elif getattr(args, "client_copyto") or getattr(args, "client_moveto"):
        destination_store_path = getattr(args, "destination_store_path")
        destination_path_arg = getattr(args, "destination_storage_path")
        if destination_store_path is None:
            raise ValueError("'-dest_store' option is required")
        if destination_path_arg is None:
            destination_path = storage_path
        else:
            destination_path = StoragePath.parse(destination_path_arg)
        move = getattr(args, "client_moveto")
        archivestore_c.transfer(
            storage_path, destination_store_path, destination_path, move
        )
        print(f"{'Moved' if move else 'Copied'}: {storage_path} -> {destination_path}")


if __name__ == "__main__":
    main()
