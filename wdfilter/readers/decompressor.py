import bz2
import logging

from wdfilter import settings
from wdfilter.errors import CorruptStreamError

logger = logging.getLogger(__name__)

class Bz2Decompressor(object):
    """
    Generates decompressed chunks from an iterable of bzip2
    compressed chunks. The compressed input can arrive in pieces
    of any size (for instance from a download in progress); output
    is produced as soon as a compressed block is complete.

    Files made of several concatenated bzip2 streams (as produced by
    parallel compressors) are decompressed as a single stream.
    """

    def __init__(self, chunks, token, max_chunk_size=None):
        self.chunks = chunks
        self.token = token
        self.max_chunk_size = max_chunk_size or settings.DECOMPRESSED_CHUNK_SIZE
        self.compressed_offset = 0
        self.decompressed_offset = 0

    def __iter__(self):
        decompressor = bz2.BZ2Decompressor()
        # bytes fed to the current stream, to tell an empty stream from a finished one
        fed = 0
        chunks = iter(self.chunks)
        try:
            for chunk in chunks:
                self.token.raise_if_cancelled()
                data = chunk
                while data:
                    fed += len(data)
                    for out in self._decompress(decompressor, data):
                        yield out
                    if not decompressor.eof:
                        break
                    # a new stream may start right after the end-of-stream marker
                    data = decompressor.unused_data
                    decompressor = bz2.BZ2Decompressor()
                    fed = 0
                self.compressed_offset += len(chunk)
        finally:
            close = getattr(chunks, 'close', None)
            if close is not None:
                close()

        if fed and not decompressor.eof:
            raise CorruptStreamError(
                'Compressed stream ended before its end-of-stream marker',
                offset=self.compressed_offset)
        if not self.decompressed_offset and not self.compressed_offset:
            raise CorruptStreamError('Compressed stream is empty', offset=0)
        logger.debug('Decompressed {} bytes into {}'.format(self.compressed_offset, self.decompressed_offset))

    def _decompress(self, decompressor, data):
        """
        Feeds data to the decompressor, yielding bounded output
        chunks until it needs more input.
        """
        while True:
            try:
                out = decompressor.decompress(data, self.max_chunk_size)
            except (OSError, ValueError) as e:
                raise CorruptStreamError(
                    'Invalid bzip2 data: {}'.format(e),
                    offset=self.compressed_offset)
            data = b''
            if out:
                self.decompressed_offset += len(out)
                yield out
            if decompressor.eof or decompressor.needs_input:
                return
