"""Default configuration variables for ArchiveStore"""

############### Storage Path ###############
# Separator used when serializing a StoragePath to a single string
SEPARATOR = "/"

############### Sidecar Metadata ###############
# Hidden folder (inside every directory) holding the sidecar metadata files
PROPERTIES_FOLDER = ".properties"
# Suffix of a sidecar file, a directory's own sidecar is named exactly like the suffix
PROPERTIES_SUFFIX = ".properties.yaml"
# Metadata cache, a size of 0 disables caching
METADATA_CACHE_SIZE = 0
# Seconds a cached sidecar map stays valid
METADATA_CACHE_TTL = 60

############### Hash Algorithms ###############
# Algorithms calculated and stored every time binary content is written
DEFAULT_ALGO_LIST = ["sha1", "md5"]
# Additional algorithms that can be calculated on request (python hashlib 3.9.0+)
OTHER_ALGO_LIST = [
    "sha224",
    "sha256",
    "sha384",
    "sha512",
    "sha3_224",
    "sha3_256",
    "sha3_384",
    "sha3_512",
    "blake2b",
    "blake2s",
]
# Reserved metadata keys for the default digests, fixity checkers look them up here
DIGEST_METADATA_KEYS = {"sha1": "digest.sha1", "md5": "digest.md5"}
# Size of the memory mapped window used when hashing files (64 MiB)
DIGEST_WINDOW_SIZE = 64 * 1024 * 1024

############### Remote Repository ###############
# Seconds to wait on the repository before failing a request
REPOSITORY_TIMEOUT = 30.0
# Amount of children requested per page when listing
REPOSITORY_PAGE_SIZE = 100
