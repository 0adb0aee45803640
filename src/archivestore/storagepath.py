"""StoragePath must be used to address entities in all StorageService implementations"""
import logging
from collections import namedtuple
from archivestore.storage_config import SEPARATOR
from archivestore.storage_exceptions import RequestInvalid


class StoragePath(namedtuple("StoragePath", ["segments"])):
    """Immutable, hierarchical and backend neutral address of an entity.

    A storage path is an ordered, non-empty tuple of segments where the first segment is
    the name of the container, followed by the names of the nested directories and finally
    the name of the entity itself. Two storage paths are equal if (and only if) their
    segments are equal.

    Example:
        StoragePath.parse("AIP", "123", "data.txt").as_string() == "AIP/123/data.txt"

    :param tuple segments: Segments of the path, container name first.
    """

    def __new__(cls, segments):
        checked_segments = tuple(segments)
        if not checked_segments:
            exception_string = "StoragePath - Storage path must have at least one segment."
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        for segment in checked_segments:
            cls._check_segment(segment)
        return super(StoragePath, cls).__new__(cls, checked_segments)

    @classmethod
    def parse(cls, container_name, *segments):
        """Build a storage path from a container name and optional nested segments. When
        only one argument is supplied, it is treated as a serialized path (as returned by
        `as_string`) and split on the separator.

        :param str container_name: Container name or serialized storage path.
        :param str segments: Names of the nested directories/entity.

        :return: StoragePath
        """
        if not segments and isinstance(container_name, str):
            return cls(container_name.split(SEPARATOR))
        return cls((container_name,) + segments)

    @staticmethod
    def _check_segment(segment):
        """Ensure a segment is a non-empty string without the separator and that it
        cannot escape its parent (`.` and `..`)."""
        if not isinstance(segment, str):
            exception_string = (
                "StoragePath - _check_segment: segments must be strings."
                + f" Segment type supplied: {type(segment)}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        if segment == "" or segment in (".", ".."):
            exception_string = (
                f"StoragePath - _check_segment: invalid segment supplied: '{segment}'"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        if SEPARATOR in segment:
            exception_string = (
                f"StoragePath - _check_segment: segment '{segment}' cannot contain"
                + f" the separator '{SEPARATOR}'"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)

    def as_string(self):
        """Serialize the path, the inverse of `StoragePath.parse`."""
        return SEPARATOR.join(self.segments)

    def __str__(self):
        return self.as_string()

    @property
    def container_name(self):
        return self.segments[0]

    @property
    def name(self):
        return self.segments[-1]

    @property
    def directory_path(self):
        """Names of the directories between the container and the entity."""
        return list(self.segments[1:-1])

    @property
    def parent(self):
        """Storage path of the enclosing container/directory, or None for a container."""
        if self.is_container_path():
            return None
        return StoragePath(self.segments[:-1])

    def is_container_path(self):
        return len(self.segments) == 1

    def child(self, name):
        """Return the storage path of an entity named `name` directly under this path."""
        return StoragePath(self.segments + (name,))

    def is_under(self, prefix):
        """Check whether `prefix` is a whole-segment prefix of (or equal to) this path.
        "AIP1" is not a prefix of "AIP10/x".

        :param StoragePath prefix: Candidate prefix.

        :return: bool
        """
        prefix_length = len(prefix.segments)
        return self.segments[:prefix_length] == prefix.segments

    def relocate(self, from_prefix, to_prefix):
        """Rewrite the `from_prefix` part of this path into `to_prefix`, matching on
        segment boundaries only.

        :param StoragePath from_prefix: Prefix to replace.
        :param StoragePath to_prefix: Replacement prefix.

        :return: StoragePath - The rewritten path.
        """
        if not self.is_under(from_prefix):
            exception_string = (
                f"StoragePath - relocate: {self.as_string()} is not under"
                + f" {from_prefix.as_string()}"
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        return StoragePath(to_prefix.segments + self.segments[len(from_prefix.segments) :])
