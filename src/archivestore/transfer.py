"""Copy and move entities between any two StorageService instances.

The transfer engine is written purely against the `StorageService` contract, so it
works for any pair of backends. It is told the kind of the root entity (it never
probes), recreates the root at the destination with the source metadata and then walks
the children lazily, rewriting each child path from the source prefix to the
destination prefix on segment boundaries. A move deletes the transferred children only
after the source listing is closed, then deletes the emptied source root.

There is no rollback. When a step fails the error propagates from that step and
whatever was transferred before it stays in place. The destination is left partially
populated, the source of a failed move is left untouched.
"""
import logging
from contextlib import closing
from archivestore.model import Binary, Container, Directory, entity_class_of
from archivestore.storage_exceptions import RequestInvalid


def copy_between_storage_services(
    from_service, from_storage_path, to_service, to_storage_path, root_entity
):
    """Copy an entity, and everything under it, from one storage service to another.
    The source is left unchanged.

    :param StorageService from_service: Source storage service.
    :param StoragePath from_storage_path: Source storage path.
    :param StorageService to_service: Destination storage service.
    :param StoragePath to_storage_path: Destination storage path.
    :param type root_entity: `Container`, `Directory` or `Binary`.
    """
    _copy_or_move(
        from_service, from_storage_path, to_service, to_storage_path, root_entity, True
    )


def move_between_storage_services(
    from_service, from_storage_path, to_service, to_storage_path, root_entity
):
    """Move an entity, and everything under it, from one storage service to another.
    The source no longer exists once the move completes.

    :param StorageService from_service: Source storage service.
    :param StoragePath from_storage_path: Source storage path.
    :param StorageService to_service: Destination storage service.
    :param StoragePath to_storage_path: Destination storage path.
    :param type root_entity: `Container`, `Directory` or `Binary`.
    """
    _copy_or_move(
        from_service, from_storage_path, to_service, to_storage_path, root_entity, False
    )


def _copy_or_move(
    from_service, from_storage_path, to_service, to_storage_path, root_entity, copy
):
    action = "copy" if copy else "move"
    logging.debug(
        "transfer - %s: Request to %s %s (%s) to %s",
        action,
        action,
        from_storage_path,
        root_entity.__name__,
        to_storage_path,
    )
    if issubclass(root_entity, Container):
        container = from_service.get_container(from_storage_path)
        to_service.create_container(to_storage_path, container.metadata)
        with closing(
            from_service.list_resources_under_container(from_storage_path)
        ) as children:
            transferred = _copy_children(
                from_service, from_storage_path, to_service, to_storage_path, children
            )
        if not copy:
            _delete_children(from_service, transferred)
            from_service.delete_container(from_storage_path)
    elif issubclass(root_entity, Directory):
        directory = from_service.get_directory(from_storage_path)
        to_service.create_directory(to_storage_path, directory.metadata)
        with closing(
            from_service.list_resources_under_directory(from_storage_path)
        ) as children:
            transferred = _copy_children(
                from_service, from_storage_path, to_service, to_storage_path, children
            )
        if not copy:
            _delete_children(from_service, transferred)
            from_service.delete_resource(from_storage_path)
    elif issubclass(root_entity, Binary):
        binary = from_service.get_binary(from_storage_path)
        _check_binary_content(binary)
        # Bytes are always copied, reference binaries are materialized at the destination
        to_service.create_binary(
            to_storage_path, binary.metadata, binary.content, as_reference=False
        )
        if not copy:
            from_service.delete_resource(from_storage_path)
    else:
        exception_string = (
            f"transfer - {action}: root entity must be Container, Directory or Binary."
            + f" Supplied: {root_entity}"
        )
        logging.error(exception_string)
        raise RequestInvalid(exception_string)
    logging.info(
        "transfer - %s: %s %s to %s", action, action, from_storage_path, to_storage_path
    )


def _copy_children(
    from_service, from_storage_path, to_service, to_storage_path, children
):
    """Copy every listed child subtree and return the source paths that were copied.
    Deleting while a paged listing is open makes it skip entries."""
    transferred = []
    for child in children:
        child_to_storage_path = child.storage_path.relocate(
            from_storage_path, to_storage_path
        )
        _copy_or_move(
            from_service,
            child.storage_path,
            to_service,
            child_to_storage_path,
            entity_class_of(child),
            True,
        )
        transferred.append(child.storage_path)
    return transferred


def _delete_children(from_service, storage_paths):
    for storage_path in storage_paths:
        from_service.delete_resource(storage_path)


def _check_binary_content(binary):
    if binary.content is None:
        exception_string = (
            f"transfer - _check_binary_content: binary {binary.storage_path} has no"
            + " content that can be copied"
            + (" (reference to unreachable content)." if binary.is_reference else ".")
        )
        logging.error(exception_string)
        raise RequestInvalid(exception_string)
