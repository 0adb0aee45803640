"""Closable, single pass iterables returned by listing operations"""
import logging
from archivestore.storage_exceptions import RequestInvalid


class ClosableIterable:
    """Lazy, forward only sequence of entities.

    The sequence can be iterated exactly once; entities are produced only as the caller
    advances. `close` releases whatever the producer holds open (a directory handle, a
    network cursor) and may be called at any point to stop early. Use it as a context
    manager, or with `contextlib.closing`, so the release is never forgotten.

    :param iterator: Iterator producing the entities.
    :param callable on_close: Called once when the iterable is closed or exhausted.
    """

    def __init__(self, iterator, on_close=None):
        self._iterator = iterator
        self._on_close = on_close
        self._started = False
        self._closed = False

    def __iter__(self):
        if self._started:
            exception_string = (
                "ClosableIterable - __iter__: listing can only be iterated once."
            )
            logging.error(exception_string)
            raise RequestInvalid(exception_string)
        self._started = True
        return self._generate()

    def _generate(self):
        try:
            for item in self._iterator:
                if self._closed:
                    break
                yield item
        finally:
            self.close()

    def close(self):
        if self._closed:
            return
        self._closed = True
        close_iterator = getattr(self._iterator, "close", None)
        try:
            if close_iterator is not None:
                close_iterator()
        finally:
            if self._on_close is not None:
                self._on_close()

    @property
    def closed(self):
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
