"""Content digest (fixity) computation and verification.

Files are hashed through a memory map that is moved over the file in bounded windows,
so memory use stays flat regardless of the size of the binary. Streams that are not
backed by a file (payloads produced in memory or fetched over the network) are hashed
in chunks. Nothing is ever hashed by reading a whole file into memory.
"""
import hashlib
import logging
import mmap
import os
from archivestore.model import copy_metadata_map
from archivestore.payload import Stream
from archivestore.storage_config import (
    DEFAULT_ALGO_LIST,
    DIGEST_METADATA_KEYS,
    DIGEST_WINDOW_SIZE,
    OTHER_ALGO_LIST,
)
from archivestore.storage_exceptions import (
    InternalError,
    NonMatchingChecksum,
    UnsupportedAlgorithm,
)


def clean_algorithm(algorithm_string):
    """Format a string and ensure that it is supported and compatible with
    the Python `hashlib` library ("SHA-1" -> "sha1", "SHA3-256" -> "sha3_256").

    :param str algorithm_string: Algorithm to validate.

    :return: `hashlib` supported algorithm string.
    :rtype: str
    """
    if not isinstance(algorithm_string, str):
        exception_string = (
            f"digest - clean_algorithm: Algorithm must be a string: {algorithm_string}"
        )
        logging.error(exception_string)
        raise UnsupportedAlgorithm(exception_string)
    count = 0
    for char in algorithm_string:
        if char.isdigit():
            count += 1
    if count > 3:
        cleaned_string = algorithm_string.lower().replace("-", "_")
    else:
        cleaned_string = algorithm_string.lower().replace("-", "").replace("_", "")
    if cleaned_string not in DEFAULT_ALGO_LIST and cleaned_string not in OTHER_ALGO_LIST:
        exception_string = (
            "digest - clean_algorithm: Algorithm not supported: " + cleaned_string
        )
        logging.error(exception_string)
        raise UnsupportedAlgorithm(exception_string)
    return cleaned_string


def compute_content_digest(path, algorithm, window_size=DIGEST_WINDOW_SIZE):
    """Compute the hex digest of a file using one named algorithm.

    :param path: File which digest will be computed.
    :type path: str, os.PathLike
    :param str algorithm: Algorithm of the digest (ex. "SHA-1", "md5").
    :param int window_size: Maximum amount of bytes mapped into memory at once.

    :return: str - Lowercase hex digest.
    """
    checked_algorithm = clean_algorithm(algorithm)
    return _compute_file_digests(path, [checked_algorithm], window_size)[
        checked_algorithm
    ]


def compute_content_digests(path, algorithms=None, window_size=DIGEST_WINDOW_SIZE):
    """Compute several hex digests of a file while reading it once.

    :param path: File which digests will be computed.
    :param list algorithms: Algorithms to calculate, defaults to the default set.
    :param int window_size: Maximum amount of bytes mapped into memory at once.

    :return: dict - Algorithm -> hex digest.
    """
    if algorithms is None:
        algorithms = DEFAULT_ALGO_LIST
    checked_algorithms = [clean_algorithm(algorithm) for algorithm in algorithms]
    return _compute_file_digests(path, checked_algorithms, window_size)


def _compute_file_digests(path, algorithms, window_size):
    # Offsets given to mmap must be multiples of the allocation granularity
    granularity = mmap.ALLOCATIONGRANULARITY
    window = max(granularity, window_size - window_size % granularity)
    hash_objects = [hashlib.new(algorithm) for algorithm in algorithms]
    try:
        with open(path, "rb") as file:
            size = os.fstat(file.fileno()).st_size
            position = 0
            while position < size:
                length = min(window, size - position)
                with mmap.mmap(
                    file.fileno(), length, offset=position, access=mmap.ACCESS_READ
                ) as data:
                    for hash_object in hash_objects:
                        hash_object.update(data)
                position += length
    except OSError as err:
        exception_string = (
            f"digest - compute_content_digest: Cannot compute content digest for {path}"
            + f" using algorithms {algorithms}. Unexpected {err=}, {type(err)=}"
        )
        logging.error(exception_string)
        raise InternalError(exception_string) from err
    return {
        algorithm: hash_object.hexdigest()
        for algorithm, hash_object in zip(algorithms, hash_objects)
    }


def compute_stream_digests(stream, algorithms=None):
    """Compute hex digests of a readable stream (or path) in chunks.

    :param mixed stream: A readable binary stream or a path to a file.
    :param list algorithms: Algorithms to calculate, defaults to the default set.

    :return: dict - Algorithm -> hex digest.
    """
    if algorithms is None:
        algorithms = DEFAULT_ALGO_LIST
    checked_algorithms = [clean_algorithm(algorithm) for algorithm in algorithms]
    hash_objects = [hashlib.new(algorithm) for algorithm in checked_algorithms]
    chunks = Stream(stream)
    try:
        for data in chunks:
            for hash_object in hash_objects:
                hash_object.update(data)
    finally:
        chunks.close()
    return {
        algorithm: hash_object.hexdigest()
        for algorithm, hash_object in zip(checked_algorithms, hash_objects)
    }


def compute_payload_digests(payload, algorithms=None):
    """Compute hex digests of a `ContentPayload`."""
    with payload.create_input_stream() as stream:
        return compute_stream_digests(stream, algorithms)


def generate_content_digest(path, window_size=DIGEST_WINDOW_SIZE):
    """Compute the default digest set (SHA-1 and MD5) of a file.

    :return: dict - Algorithm -> hex digest.
    """
    return compute_content_digests(path, DEFAULT_ALGO_LIST, window_size)


def add_content_digest_to_metadata(metadata, content_digest):
    """Store each digest of `content_digest` in `metadata` under its reserved key. The
    map is modified in place and returned.

    :param dict metadata: Metadata map (key -> set of values).
    :param dict content_digest: Algorithm -> hex digest.

    :return: dict - The updated metadata map.
    """
    for algorithm, hex_digest in content_digest.items():
        metadata_key = DIGEST_METADATA_KEYS.get(clean_algorithm(algorithm))
        if metadata_key is None:
            logging.debug(
                "digest - add_content_digest_to_metadata: No reserved key for %s,"
                + " digest not stored.",
                algorithm,
            )
            continue
        metadata[metadata_key] = {hex_digest}
    return metadata


def obtain_content_digest(metadata):
    """Read the digests stored under the reserved keys of a metadata map. Keys holding
    more (or less) than one value are ignored.

    :return: dict - Algorithm -> hex digest.
    """
    content_digest = {}
    if metadata:
        for algorithm, metadata_key in DIGEST_METADATA_KEYS.items():
            values = metadata.get(metadata_key)
            if values is not None and len(values) == 1:
                content_digest[algorithm] = next(iter(values))
    return content_digest


def strip_content_digest(metadata):
    """Return a copy of a metadata map without the reserved digest keys."""
    reserved_keys = set(DIGEST_METADATA_KEYS.values())
    return {
        key: values
        for key, values in copy_metadata_map(metadata).items()
        if key not in reserved_keys
    }


def verify_content_digest(content, expected_digest):
    """Recompute the digests of `content` and compare them to `expected_digest`.

    :param mixed content: Path to a file or a `ContentPayload`.
    :param dict expected_digest: Algorithm -> expected hex digest.

    :return: bool - True if every digest matches.
    """
    algorithms = list(expected_digest.keys())
    if hasattr(content, "create_input_stream"):
        calculated_digest = compute_payload_digests(content, algorithms)
    else:
        calculated_digest = compute_content_digests(content, algorithms)
    for algorithm, expected_hex_digest in expected_digest.items():
        calculated_hex_digest = calculated_digest[clean_algorithm(algorithm)]
        if calculated_hex_digest != expected_hex_digest.lower():
            exception_string = (
                f"digest - verify_content_digest: {algorithm} digest mismatch."
                + f" Expected: {expected_hex_digest}, calculated: {calculated_hex_digest}"
            )
            logging.error(exception_string)
            raise NonMatchingChecksum(exception_string)
    return True
