"""Entities that can be addressed through a StorageService"""
from collections import namedtuple


def copy_metadata_map(metadata):
    """Return a detached copy of a metadata map, converting every value to a set of
    strings.

    :param dict metadata: Metadata map (key -> iterable of values), may be None.

    :return: dict - key -> set of values.
    """
    if metadata is None:
        return {}
    copied_metadata = {}
    for key, values in metadata.items():
        if isinstance(values, str):
            values = [values]
        copied_metadata[str(key)] = {str(value) for value in values}
    return copied_metadata


class Resource:
    """Common base of every entity (container, directory and binary)."""

    __slots__ = ()

    @property
    def is_directory(self):
        return True


class Container(Resource, namedtuple("Container", ["storage_path", "metadata"])):
    """Top-level namespace of a storage service (e.g. "AIP", "Preservation").

    :param StoragePath storage_path: Single segment storage path.
    :param dict metadata: Metadata map (key -> set of values).
    """

    __slots__ = ()

    def __new__(cls, storage_path, metadata=None):
        return super(Container, cls).__new__(
            cls, storage_path, copy_metadata_map(metadata)
        )


class Directory(Resource, namedtuple("Directory", ["storage_path", "metadata"])):
    """Non-leaf node under a container. Children live at nested storage paths.

    :param StoragePath storage_path: Storage path of the directory.
    :param dict metadata: Metadata map (key -> set of values).
    """

    __slots__ = ()

    def __new__(cls, storage_path, metadata=None):
        return super(Directory, cls).__new__(
            cls, storage_path, copy_metadata_map(metadata)
        )


class Binary(
    Resource,
    namedtuple(
        "Binary",
        [
            "storage_path",
            "metadata",
            "content",
            "size_in_bytes",
            "is_reference",
            "content_digest",
        ],
    ),
):
    """Leaf node with content.

    :param StoragePath storage_path: Storage path of the binary.
    :param dict metadata: Metadata map (key -> set of values), without the reserved
        digest keys.
    :param ContentPayload content: Payload producing the content.
    :param int size_in_bytes: Size of the content.
    :param bool is_reference: Whether the content lives outside the service's control.
    :param dict content_digest: Algorithm (hashlib name) -> hex digest.
    """

    __slots__ = ()

    def __new__(
        cls,
        storage_path,
        metadata,
        content,
        size_in_bytes,
        is_reference=False,
        content_digest=None,
    ):
        return super(Binary, cls).__new__(
            cls,
            storage_path,
            copy_metadata_map(metadata),
            content,
            size_in_bytes,
            is_reference,
            dict(content_digest or {}),
        )

    @property
    def is_directory(self):
        return False


def entity_class_of(resource):
    """Return the type tag (Container, Directory or Binary) of a resource."""
    for entity_class in (Container, Directory, Binary):
        if isinstance(resource, entity_class):
            return entity_class
    raise TypeError(f"Not a storage entity: {type(resource)}")
