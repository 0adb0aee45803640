"""Content payloads: lazy and re-readable handles to the bytes of a binary"""
from abc import ABC, abstractmethod
import atexit
import io
import os
import shutil
from pathlib import Path
from tempfile import NamedTemporaryFile


class ContentPayload(ABC):
    """A ContentPayload produces the content of a binary on demand. Every call to
    `create_input_stream` returns a new stream positioned at the start of the content,
    so a payload can be read as many times as needed (e.g. once to store the content
    and once more to compute its digests)."""

    @abstractmethod
    def create_input_stream(self):
        """Open a new binary stream over the content. The caller is responsible for
        closing the stream.

        :return: io.BufferedIOBase - Stream ready for reading.
        """
        raise NotImplementedError()

    def write_to_path(self, path):
        """Materialize the content at the given filesystem location, replacing any file
        that is already there.

        :param path: Destination file path.
        :type path: str, os.PathLike
        """
        with self.create_input_stream() as in_stream, open(path, "wb") as out_file:
            shutil.copyfileobj(in_stream, out_file)

    @abstractmethod
    def get_uri(self):
        """Return a URI that names the content.

        :return: str - URI of the content.
        """
        raise NotImplementedError()


class PathContentPayload(ContentPayload):
    """Content backed by a file on disk."""

    def __init__(self, path):
        self.path = Path(path)

    def create_input_stream(self):
        # pylint: disable=R1732
        return io.open(self.path, "rb")

    def write_to_path(self, path):
        shutil.copyfile(self.path, path)

    def get_uri(self):
        return self.path.absolute().as_uri()

    def __repr__(self):
        return f"PathContentPayload({str(self.path)!r})"


class BytesContentPayload(ContentPayload):
    """Content held in memory."""

    def __init__(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.data = bytes(data)
        self._content_path = None

    def create_input_stream(self):
        return io.BytesIO(self.data)

    def get_uri(self):
        # Materialized once, on first request
        if self._content_path is None:
            self._content_path = _mktmpcontent(".bin")
            self.write_to_path(self._content_path)
        return Path(self._content_path).as_uri()


class StringContentPayload(BytesContentPayload):
    """Buffered string content (e.g. a JSON document). The string is only written to a
    temporary file when a URI is requested."""

    def __init__(self, content, suffix=".json"):
        super().__init__(content.encode("utf-8"))
        self.content = content
        self.suffix = suffix

    def get_uri(self):
        if self._content_path is None:
            self._content_path = _mktmpcontent(self.suffix)
            self.write_to_path(self._content_path)
        return Path(self._content_path).as_uri()


def _mktmpcontent(suffix):
    """Create a named temporary file that is removed when the interpreter exits.

    :param str suffix: Suffix of the temporary file.

    :return: str - Path to the temporary file.
    """
    with NamedTemporaryFile(prefix="content", suffix=suffix, delete=False) as tmp:
        tmp_name = tmp.name

    def delete_tmp_file():
        if os.path.exists(tmp_name):
            os.remove(tmp_name)

    atexit.register(delete_tmp_file)
    return tmp_name


class Stream(object):
    """Common interface for file-like objects.

    The input `obj` can be a file-like object or a path to a file. If `obj` is
    a path to a file, then it will be opened until :meth:`close` is called.
    If `obj` is a file-like object, then its original position will be
    restored when :meth:`close` is called instead of closing the object
    automatically. Closing of the stream is deferred to whatever process passed
    the stream in.

    Successive readings of the stream is supported without having to manually
    set its position back to ``0`` (for seekable objects).
    """

    def __init__(self, obj):
        if hasattr(obj, "read"):
            pos = obj.tell() if obj.seekable() else None
            owned = False
        elif os.path.isfile(obj):
            obj = io.open(obj, "rb")
            pos = None
            owned = True
        else:
            raise ValueError("Object must be a valid file path or a readable object")

        try:
            file_stat = os.stat(obj.name)
            buffer_size = file_stat.st_blksize
        except (AttributeError, TypeError, OSError):
            buffer_size = 8192

        self._obj = obj
        self._pos = pos
        self._owned = owned
        self._buffer_size = buffer_size

    def __iter__(self):
        """Read underlying IO object and yield results. Return object to
        original position if we didn't open it originally.
        """
        if self._obj.seekable():
            self._obj.seek(0)

        while True:
            data = self._obj.read(self._buffer_size)

            if not data:
                break

            yield data

        if self._pos is not None:
            self._obj.seek(self._pos)

    def close(self):
        """Close underlying IO object if we opened it, else return it to
        original position.
        """
        if self._owned:
            self._obj.close()
        elif self._pos is not None:
            self._obj.seek(self._pos)
