import logging
import sys

from wdfilter import settings
from wdfilter.errors import SinkWriteError

logger = logging.getLogger(__name__)

class OutputSink(object):
    """
    Writes result lines, in the order they are received, to a file
    or to the standard output.
    """

    separator = b'\n'

    def __init__(self, path=None, stream=None, flush_every=None):
        """
        :param path: the file to write to. When neither a path nor a stream is
            given, the standard output is used.
        :param stream: a binary file-like object to write to instead of a path.
            It is flushed but not closed by the sink.
        :param flush_every: number of lines written between two flushes
        """
        self.path = path
        self.stream = stream
        self.flush_every = flush_every or settings.FLUSH_EVERY
        self.lines_written = 0
        self.bytes_written = 0
        self._f = None
        self._owned = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    def open(self):
        if self._f is not None:
            return
        if self.stream is not None:
            self._f = self.stream
        elif self.path is None:
            self._f = sys.stdout.buffer
        else:
            try:
                self._f = open(self.path, 'wb')
            except OSError as e:
                raise SinkWriteError('Could not open "{}" for writing: {}'.format(self.path, e))
            self._owned = True

    @property
    def destination(self):
        return self.path or '<stdout>'

    def write(self, line):
        """
        Writes one line, which may or may not carry its line terminator.
        """
        if self._f is None:
            self.open()
        if line.endswith(b'\n'):
            line = line[:-1]
            if line.endswith(b'\r'):
                line = line[:-1]
        try:
            self._f.write(line)
            self._f.write(self.separator)
            self.lines_written += 1
            self.bytes_written += len(line) + len(self.separator)
            if self.lines_written % self.flush_every == 0:
                self._f.flush()
        except OSError as e:
            raise SinkWriteError('Could not write to {}: {}'.format(self.destination, e),
                                 element_index=self.lines_written)

    def flush(self):
        if self._f is None:
            return
        try:
            self._f.flush()
        except OSError as e:
            raise SinkWriteError('Could not flush {}: {}'.format(self.destination, e))

    def close(self):
        if self._f is None:
            return
        try:
            self.flush()
        finally:
            if self._owned:
                try:
                    self._f.close()
                except OSError as e:
                    raise SinkWriteError('Could not close {}: {}'.format(self.destination, e))
            self._f = None
            self._owned = False
        logger.debug('Wrote {} lines to {}'.format(self.lines_written, self.destination))
