"""Test module for FileStorageService"""
import errno
import os
import pytest
from archivestore.filestorage import FileStorageService
from archivestore.metadata import YamlMetadataSidecar
from archivestore.cache import MetadataCache
from archivestore.model import Binary, Container, Directory
from archivestore.payload import BytesContentPayload, PathContentPayload
from archivestore.storage_exceptions import (
    AlreadyExists,
    NotFound,
    RequestInvalid,
    UnsupportedAlgorithm,
)
from archivestore.storagepath import StoragePath


def read_content(binary):
    """Read the whole content of a binary."""
    with binary.content.create_input_stream() as stream:
        return stream.read()


def test_init_creates_store_path(tmp_path):
    """Check the store directory is created on initialization."""
    store_path = tmp_path / "new" / "store"
    store = FileStorageService({"store_path": store_path.as_posix()})
    assert os.path.isdir(store_path)
    assert store.root == os.path.abspath(store_path)


def test_init_missing_properties():
    """Check initialization fails without properties."""
    with pytest.raises(ValueError):
        FileStorageService()


def test_init_missing_store_path():
    """Check initialization fails without store_path."""
    with pytest.raises(KeyError):
        FileStorageService({"store_digest_algorithms": ["sha1"]})


def test_init_store_path_none():
    """Check initialization fails when store_path is None."""
    with pytest.raises(ValueError):
        FileStorageService({"store_path": None})


def test_init_digest_algorithm_without_reserved_key(props):
    """Check only algorithms with a reserved metadata key can be configured."""
    props["store_digest_algorithms"] = ["sha256"]
    with pytest.raises(ValueError):
        FileStorageService(props)


def test_init_unsupported_digest_algorithm(props):
    """Check unknown algorithms are refused."""
    props["store_digest_algorithms"] = ["MD2"]
    with pytest.raises(UnsupportedAlgorithm):
        FileStorageService(props)


def test_init_invalid_window_size(props):
    """Check the digest window size must be a positive integer."""
    props["store_digest_window_size"] = "big"
    with pytest.raises(TypeError):
        FileStorageService(props)
    props["store_digest_window_size"] = 0
    with pytest.raises(ValueError):
        FileStorageService(props)


def test_create_and_get_container(store):
    """Check creating a container and reading it back."""
    storage_path = StoragePath.parse("AIP")
    container = store.create_container(storage_path, {"type": {"AIP"}})
    assert isinstance(container, Container)
    assert container.metadata == {"type": {"AIP"}}
    assert store.get_container(storage_path) == container
    assert os.path.isdir(os.path.join(store.root, "AIP"))
    assert os.path.isfile(
        os.path.join(store.root, "AIP", ".properties", ".properties.yaml")
    )


def test_create_container_already_exists(store):
    """Check creating a container twice raises AlreadyExists."""
    store.create_container(StoragePath.parse("AIP"), {})
    with pytest.raises(AlreadyExists):
        store.create_container(StoragePath.parse("AIP"), {})


def test_create_container_nested_path(store):
    """Check a container path must have a single segment."""
    with pytest.raises(RequestInvalid):
        store.create_container(StoragePath.parse("AIP", "x"), {})


def test_get_container_not_found(store):
    """Check a missing container raises NotFound."""
    with pytest.raises(NotFound):
        store.get_container(StoragePath.parse("AIP"))


def test_list_containers(store):
    """Check containers are listed, files at the store root are not."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_container(StoragePath.parse("Preservation"), {})
    with open(os.path.join(store.root, "python_client.log"), "w", encoding="utf-8"):
        pass
    with store.list_containers() as containers:
        names = sorted(container.storage_path.as_string() for container in containers)
    assert names == ["AIP", "Preservation"]


def test_create_directory(store):
    """Check creating a directory under a container."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "123")
    directory = store.create_directory(storage_path, {"state": {"active"}})
    assert isinstance(directory, Directory)
    assert store.get_directory(storage_path).metadata == {"state": {"active"}}


def test_create_directory_missing_parent(store):
    """Check creating a directory without its parent raises NotFound."""
    with pytest.raises(NotFound):
        store.create_directory(StoragePath.parse("AIP", "123"), {})


def test_create_directory_already_exists(store):
    """Check creating a directory twice raises AlreadyExists."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_directory(StoragePath.parse("AIP", "123"), {})
    with pytest.raises(AlreadyExists):
        store.create_directory(StoragePath.parse("AIP", "123"), {})


def test_create_binary(store, contents):
    """Check a binary holds the content, size and default digests."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "hello.txt")
    binary = store.create_binary(
        storage_path, {"format": {"text"}}, BytesContentPayload(b"hello")
    )
    assert isinstance(binary, Binary)
    assert binary.size_in_bytes == contents["hello"]["size"]
    assert binary.content_digest == {
        "sha1": contents["hello"]["sha1"],
        "md5": contents["hello"]["md5"],
    }
    assert binary.metadata == {"format": {"text"}}
    assert not binary.is_reference
    assert read_content(binary) == b"hello"


def test_create_binary_digests_stored_in_sidecar(store, contents):
    """Check digests are persisted under the reserved keys of the sidecar."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "hello.txt")
    store.create_binary(storage_path, {}, BytesContentPayload(b"hello"))
    sidecar = store.metadata_store.read_metadata(
        store.get_entity_path(storage_path), is_directory=False
    )
    assert sidecar["digest.sha1"] == {contents["hello"]["sha1"]}
    assert sidecar["digest.md5"] == {contents["hello"]["md5"]}


def test_create_binary_caller_digests_are_ignored(store, contents):
    """Check digests supplied as metadata are replaced by the computed ones."""
    store.create_container(StoragePath.parse("AIP"), {})
    binary = store.create_binary(
        StoragePath.parse("AIP", "hello.txt"),
        {"digest.sha1": {"0000"}},
        BytesContentPayload(b"hello"),
    )
    assert binary.content_digest["sha1"] == contents["hello"]["sha1"]
    assert "digest.sha1" not in binary.metadata


def test_create_binary_empty_content(store, contents):
    """Check an empty binary is stored with the digests of empty content."""
    store.create_container(StoragePath.parse("AIP"), {})
    binary = store.create_binary(
        StoragePath.parse("AIP", "empty"), {}, BytesContentPayload(b"")
    )
    assert binary.size_in_bytes == 0
    assert binary.content_digest["md5"] == contents["empty"]["md5"]


def test_create_binary_from_path(store, tmp_path, contents):
    """Check a binary created from a file on disk."""
    file_path = tmp_path / "source.txt"
    file_path.write_bytes(b"hello world")
    store.create_container(StoragePath.parse("AIP"), {})
    binary = store.create_binary(
        StoragePath.parse("AIP", "source.txt"), {}, PathContentPayload(file_path)
    )
    assert binary.content_digest["sha1"] == contents["hello world"]["sha1"]


def test_create_binary_already_exists(store):
    """Check creating a binary twice raises AlreadyExists."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "x")
    store.create_binary(storage_path, {}, BytesContentPayload(b"a"))
    with pytest.raises(AlreadyExists):
        store.create_binary(storage_path, {}, BytesContentPayload(b"b"))
    assert read_content(store.get_binary(storage_path)) == b"a"


def test_create_binary_missing_parent(store):
    """Check creating a binary without its parent raises NotFound."""
    with pytest.raises(NotFound):
        store.create_binary(
            StoragePath.parse("AIP", "x"), {}, BytesContentPayload(b"a")
        )


def test_create_binary_as_reference(store):
    """Check the filesystem backend refuses reference binaries."""
    store.create_container(StoragePath.parse("AIP"), {})
    with pytest.raises(RequestInvalid):
        store.create_binary(
            StoragePath.parse("AIP", "x"),
            {},
            BytesContentPayload(b"a"),
            as_reference=True,
        )


def test_create_binary_leaves_no_temporary_file(store):
    """Check the temporary content file is renamed into place."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(StoragePath.parse("AIP", "x"), {}, BytesContentPayload(b"a"))
    properties_folder = os.path.join(store.root, "AIP", ".properties")
    assert [
        name for name in os.listdir(properties_folder) if name.startswith(".tmp")
    ] == []


def test_get_binary_on_directory(store):
    """Check requesting a directory as a binary raises RequestInvalid."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_directory(StoragePath.parse("AIP", "123"), {})
    with pytest.raises(RequestInvalid):
        store.get_binary(StoragePath.parse("AIP", "123"))
    with pytest.raises(NotFound):
        store.get_binary(StoragePath.parse("AIP", "missing"))


def test_get_directory_on_binary(store):
    """Check requesting a binary as a directory raises RequestInvalid."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(StoragePath.parse("AIP", "x"), {}, BytesContentPayload(b"a"))
    with pytest.raises(RequestInvalid):
        store.get_directory(StoragePath.parse("AIP", "x"))
    with pytest.raises(RequestInvalid):
        store.list_resources_under_directory(StoragePath.parse("AIP", "x"))


def test_update_binary_content(store, contents):
    """Check updating content refreshes the digests and keeps other metadata."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "x")
    store.create_binary(storage_path, {"format": {"text"}}, BytesContentPayload(b"hello"))
    binary = store.update_binary_content(storage_path, BytesContentPayload(b"abc"))
    assert binary.content_digest == {
        "sha1": contents["abc"]["sha1"],
        "md5": contents["abc"]["md5"],
    }
    assert binary.metadata == {"format": {"text"}}
    assert binary.size_in_bytes == 3
    assert read_content(binary) == b"abc"


def test_update_binary_content_not_found(store):
    """Check updating a missing binary raises NotFound unless asked to create it."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "x")
    with pytest.raises(NotFound):
        store.update_binary_content(storage_path, BytesContentPayload(b"a"))
    binary = store.update_binary_content(
        storage_path, BytesContentPayload(b"a"), create_if_not_exists=True
    )
    assert read_content(binary) == b"a"


def test_get_resource(store):
    """Check any entity kind is returned by get_resource."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_directory(StoragePath.parse("AIP", "d"), {})
    store.create_binary(StoragePath.parse("AIP", "d", "b"), {}, BytesContentPayload(b"a"))
    assert isinstance(store.get_resource(StoragePath.parse("AIP")), Container)
    assert isinstance(store.get_resource(StoragePath.parse("AIP", "d")), Directory)
    assert isinstance(store.get_resource(StoragePath.parse("AIP", "d", "b")), Binary)
    with pytest.raises(NotFound):
        store.get_resource(StoragePath.parse("AIP", "missing"))


def test_update_metadata_merges(store):
    """Check updating metadata without replace_all unions the maps."""
    storage_path = StoragePath.parse("AIP")
    store.create_container(storage_path, {"a": {"1"}})
    updated = store.update_metadata(storage_path, {"a": {"2"}, "b": {"3"}})
    assert updated == {"a": {"1", "2"}, "b": {"3"}}
    assert store.get_container(storage_path).metadata == updated


def test_update_metadata_replace_all(store):
    """Check replace_all stores exactly the supplied map."""
    storage_path = StoragePath.parse("AIP")
    store.create_container(storage_path, {"a": {"1"}})
    updated = store.update_metadata(storage_path, {"b": {"3"}}, replace_all=True)
    assert updated == {"b": {"3"}}


def test_update_metadata_keeps_digests(store, contents):
    """Check digests survive a metadata replacement and cannot be overwritten."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "x")
    store.create_binary(storage_path, {"a": {"1"}}, BytesContentPayload(b"hello"))
    store.update_metadata(
        storage_path, {"b": {"2"}, "digest.sha1": {"forged"}}, replace_all=True
    )
    binary = store.get_binary(storage_path)
    assert binary.metadata == {"b": {"2"}}
    assert binary.content_digest["sha1"] == contents["hello"]["sha1"]


def test_update_metadata_not_found(store):
    """Check updating the metadata of a missing entity raises NotFound."""
    with pytest.raises(NotFound):
        store.update_metadata(StoragePath.parse("AIP"), {"a": {"1"}})


def test_list_resources_skips_properties_folder(store):
    """Check the properties folder never appears in listings."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_directory(StoragePath.parse("AIP", "d"), {})
    store.create_binary(StoragePath.parse("AIP", "b"), {}, BytesContentPayload(b"a"))
    with store.list_resources_under_container(StoragePath.parse("AIP")) as resources:
        listed = sorted(resource.storage_path.as_string() for resource in resources)
    assert listed == ["AIP/b", "AIP/d"]


def test_list_resources_not_found(store):
    """Check listing a missing container raises NotFound."""
    with pytest.raises(NotFound):
        store.list_resources_under_container(StoragePath.parse("AIP"))


def test_delete_binary_removes_sidecar(store):
    """Check deleting a binary removes its content and sidecar."""
    store.create_container(StoragePath.parse("AIP"), {})
    storage_path = StoragePath.parse("AIP", "x")
    store.create_binary(storage_path, {"a": {"1"}}, BytesContentPayload(b"a"))
    store.delete_resource(storage_path)
    binary_path = store.get_entity_path(storage_path)
    assert not os.path.exists(binary_path)
    assert not os.path.exists(
        store.metadata_store.get_properties_path(binary_path, is_directory=False)
    )
    with pytest.raises(NotFound):
        store.delete_resource(storage_path)
    with store.list_resources_under_container(StoragePath.parse("AIP")) as resources:
        assert list(resources) == []


def test_delete_binary_keeps_siblings_listed(store):
    """Check a deleted binary disappears from the listing of its parent."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(StoragePath.parse("AIP", "x"), {}, BytesContentPayload(b"a"))
    store.create_binary(StoragePath.parse("AIP", "y"), {}, BytesContentPayload(b"b"))
    store.delete_resource(StoragePath.parse("AIP", "x"))
    with store.list_resources_under_container(StoragePath.parse("AIP")) as resources:
        listed = [resource.storage_path.as_string() for resource in resources]
    assert listed == ["AIP/y"]


def test_properties_folder_is_not_a_resource(store, contents):
    """Check the hidden properties folder cannot be read, created or deleted."""
    store.create_container(StoragePath.parse("AIP"), {})
    binary_path = StoragePath.parse("AIP", "x")
    store.create_binary(binary_path, {"a": {"1"}}, BytesContentPayload(b"hello"))
    properties_path = StoragePath.parse("AIP", ".properties")
    with pytest.raises(RequestInvalid):
        store.get_directory(properties_path)
    with pytest.raises(RequestInvalid):
        store.get_resource(properties_path)
    with pytest.raises(RequestInvalid):
        store.list_resources_under_directory(properties_path)
    with pytest.raises(RequestInvalid):
        store.delete_resource(properties_path)
    with pytest.raises(RequestInvalid):
        store.update_metadata(properties_path, {"a": {"2"}})
    with pytest.raises(RequestInvalid):
        store.create_directory(StoragePath.parse("AIP", ".properties", "d"), {})
    with pytest.raises(RequestInvalid):
        store.create_binary(
            StoragePath.parse("AIP", ".properties", "x.properties.yaml"),
            {},
            BytesContentPayload(b"a"),
        )
    with pytest.raises(RequestInvalid):
        store.create_container(StoragePath.parse(".properties"), {})
    binary = store.get_binary(binary_path)
    assert binary.metadata == {"a": {"1"}}
    assert binary.content_digest["sha1"] == contents["hello"]["sha1"]


def test_delete_container_recursively(store):
    """Check deleting a container removes everything under it."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_directory(StoragePath.parse("AIP", "d"), {})
    store.create_directory(StoragePath.parse("AIP", "d", "e"), {})
    store.create_binary(
        StoragePath.parse("AIP", "d", "e", "b"), {}, BytesContentPayload(b"a")
    )
    store.delete_container(StoragePath.parse("AIP"))
    assert not os.path.exists(os.path.join(store.root, "AIP"))
    with pytest.raises(NotFound):
        store.get_container(StoragePath.parse("AIP"))


def test_delete_missing_container(store):
    """Check deleting a missing container raises NotFound."""
    with pytest.raises(NotFound):
        store.delete_container(StoragePath.parse("AIP"))


def test_copy_within_store(store):
    """Check a same store copy duplicates content and metadata."""
    store.create_container(StoragePath.parse("AIP"), {"t": {"AIP"}})
    store.create_directory(StoragePath.parse("AIP", "d"), {"d": {"1"}})
    store.create_binary(
        StoragePath.parse("AIP", "d", "b"), {"b": {"2"}}, BytesContentPayload(b"hello")
    )
    store.copy(store, StoragePath.parse("AIP", "d"), StoragePath.parse("AIP", "copy"))
    copied = store.get_binary(StoragePath.parse("AIP", "copy", "b"))
    assert read_content(copied) == b"hello"
    assert copied.metadata == {"b": {"2"}}
    assert store.get_directory(StoragePath.parse("AIP", "copy")).metadata == {"d": {"1"}}
    assert store.get_binary(StoragePath.parse("AIP", "d", "b"))


def test_copy_binary_within_store(store):
    """Check copying a single binary copies its sidecar."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(
        StoragePath.parse("AIP", "b"), {"b": {"2"}}, BytesContentPayload(b"hello")
    )
    store.copy(store, StoragePath.parse("AIP", "b"), StoragePath.parse("AIP", "c"))
    copied = store.get_binary(StoragePath.parse("AIP", "c"))
    assert copied.metadata == {"b": {"2"}}
    assert copied.content_digest == store.get_binary(
        StoragePath.parse("AIP", "b")
    ).content_digest


def test_copy_target_exists(store):
    """Check copying onto an existing entity raises AlreadyExists."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(StoragePath.parse("AIP", "b"), {}, BytesContentPayload(b"a"))
    store.create_binary(StoragePath.parse("AIP", "c"), {}, BytesContentPayload(b"c"))
    with pytest.raises(AlreadyExists):
        store.copy(store, StoragePath.parse("AIP", "b"), StoragePath.parse("AIP", "c"))


def test_copy_source_missing(store):
    """Check copying a missing entity raises NotFound."""
    store.create_container(StoragePath.parse("AIP"), {})
    with pytest.raises(NotFound):
        store.copy(store, StoragePath.parse("AIP", "b"), StoragePath.parse("AIP", "c"))


def test_copy_binary_to_container_path(store):
    """Check a binary cannot become a container."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(StoragePath.parse("AIP", "b"), {}, BytesContentPayload(b"a"))
    with pytest.raises(RequestInvalid):
        store.copy(store, StoragePath.parse("AIP", "b"), StoragePath.parse("B"))


def test_move_within_store(store):
    """Check a same store move relocates content and metadata."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(
        StoragePath.parse("AIP", "b"), {"b": {"2"}}, BytesContentPayload(b"hello")
    )
    store.move(store, StoragePath.parse("AIP", "b"), StoragePath.parse("AIP", "c"))
    moved = store.get_binary(StoragePath.parse("AIP", "c"))
    assert moved.metadata == {"b": {"2"}}
    assert read_content(moved) == b"hello"
    with pytest.raises(NotFound):
        store.get_binary(StoragePath.parse("AIP", "b"))


def test_move_container_between_stores(store, other_store):
    """Check moving a container to another filesystem store."""
    store.create_container(StoragePath.parse("AIP"), {"t": {"AIP"}})
    store.create_binary(
        StoragePath.parse("AIP", "b"), {"b": {"2"}}, BytesContentPayload(b"hello")
    )
    other_store.move(store, StoragePath.parse("AIP"), StoragePath.parse("Archive"))
    assert other_store.get_container(StoragePath.parse("Archive")).metadata == {
        "t": {"AIP"}
    }
    moved = other_store.get_binary(StoragePath.parse("Archive", "b"))
    assert moved.metadata == {"b": {"2"}}
    with pytest.raises(NotFound):
        store.get_container(StoragePath.parse("AIP"))


def test_move_across_devices(store, other_store, monkeypatch):
    """Check a move falls back to copy and delete when rename crosses devices."""
    store.create_container(StoragePath.parse("AIP"), {})
    store.create_binary(
        StoragePath.parse("AIP", "b"), {"b": {"2"}}, BytesContentPayload(b"hello")
    )
    other_store.create_container(StoragePath.parse("AIP"), {})

    def cross_device_rename(source, target):
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    monkeypatch.setattr(os, "rename", cross_device_rename)
    other_store.move(store, StoragePath.parse("AIP", "b"), StoragePath.parse("AIP", "b"))
    monkeypatch.undo()
    moved = other_store.get_binary(StoragePath.parse("AIP", "b"))
    assert read_content(moved) == b"hello"
    assert moved.metadata == {"b": {"2"}}
    with pytest.raises(NotFound):
        store.get_binary(StoragePath.parse("AIP", "b"))


def test_metadata_cache_consistency(props):
    """Check a cached store never returns stale metadata after writes."""
    props["store_metadata_cache_size"] = 10
    store = FileStorageService(props)
    assert store.metadata_store.cache is not None
    storage_path = StoragePath.parse("AIP")
    store.create_container(storage_path, {"a": {"1"}})
    assert store.get_container(storage_path).metadata == {"a": {"1"}}
    store.update_metadata(storage_path, {"a": {"2"}}, replace_all=True)
    assert store.get_container(storage_path).metadata == {"a": {"2"}}
    store.delete_container(storage_path)
    store.create_container(storage_path, {})
    assert store.get_container(storage_path).metadata == {}


def test_injected_metadata_store(props):
    """Check a sidecar store can be supplied by the caller."""
    metadata_store = YamlMetadataSidecar(cache=MetadataCache(5, 30))
    store = FileStorageService(props, metadata_store=metadata_store)
    assert store.metadata_store is metadata_store


def test_storage_path_type_checked(store):
    """Check a plain string is refused as storage path."""
    with pytest.raises(RequestInvalid):
        store.get_resource("AIP/x")


def test_aip_scenario(store, contents):
    """Check the full life cycle of an archival package."""
    aip = StoragePath.parse("AIP")
    store.create_container(aip, {})
    package = StoragePath.parse("AIP", "123")
    store.create_directory(package, {"state": {"active"}})
    data = StoragePath.parse("AIP", "123", "data.txt")
    store.create_binary(data, {"format": {"text/plain"}}, BytesContentPayload(b"hello"))

    binary = store.get_binary(data)
    assert read_content(binary) == b"hello"
    assert binary.content_digest["sha1"] == contents["hello"]["sha1"]

    store.update_metadata(package, {"state": {"inactive"}}, replace_all=True)
    assert store.get_directory(package).metadata == {"state": {"inactive"}}

    with store.list_resources_under_directory(package) as resources:
        assert [resource.storage_path for resource in resources] == [data]

    store.delete_resource(package)
    with pytest.raises(NotFound):
        store.get_binary(data)
    with store.list_resources_under_container(aip) as resources:
        assert list(resources) == []
