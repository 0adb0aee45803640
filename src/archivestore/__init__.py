"""ArchiveStore is a storage layer for digital preservation repositories that keeps
archival packages as containers, directories and binaries, each carrying a metadata
map, behind one StorageService contract with interchangeable backends.

Some properties:

- Entities are addressed by a StoragePath (container name first, then the nested
    directory names and the entity name), independent of the backend
- Metadata is a map of keys to sets of string values; filesystem stores keep it in
    YAML sidecar files inside hidden `.properties` folders
- Every binary write computes SHA-1 and MD5 digests that are kept as metadata
    under the reserved keys `digest.sha1` and `digest.md5`
- Entities can be copied or moved between any two StorageService implementations,
    e.g. from a local directory tree to a remote object repository
"""

from archivestore.storage_service import StorageService, StorageServiceFactory
from archivestore.storagepath import StoragePath
from archivestore.model import Binary, Container, Directory, Resource
from archivestore.payload import (
    BytesContentPayload,
    ContentPayload,
    PathContentPayload,
    StringContentPayload,
)

__all__ = (
    "StorageService",
    "StorageServiceFactory",
    "StoragePath",
    "Resource",
    "Container",
    "Directory",
    "Binary",
    "ContentPayload",
    "PathContentPayload",
    "BytesContentPayload",
    "StringContentPayload",
)
__version__ = "1.0.0"
