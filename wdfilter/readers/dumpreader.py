import logging

from wdfilter.readers.decompressor import Bz2Decompressor
from wdfilter.readers.source import DownloadSource
from wdfilter.readers.source import LocalFileSource
from wdfilter.readers.splitter import ArraySplitter

logger = logging.getLogger(__name__)

class WikidataDumpReader(object):
    """
    Generates the entities of a bzip2-compressed Wikidata JSON dump,
    one raw JSON document (bytes) at a time, without ever holding
    more than one entity in memory.
    """

    def __init__(self, source, token, decompressed_chunk_size=None):
        self.source = source
        self.token = token
        self.decompressor = Bz2Decompressor(source, token, max_chunk_size=decompressed_chunk_size)
        self.splitter = ArraySplitter(self.decompressor)
        self.elements = None

    @classmethod
    def open(cls, token, fname=None, url=None, resume=False, **kwargs):
        """
        Reads the dump from a local file (or '-' for the standard
        input), or from a URL while downloading it.
        """
        if url is not None:
            source = DownloadSource(url, token, resume=resume,
                                    directory=kwargs.pop('directory', None),
                                    session=kwargs.pop('session', None))
        else:
            source = LocalFileSource(fname, token)
        return cls(source, token, **kwargs)

    @property
    def element_index(self):
        return self.splitter.state.element_index

    @property
    def compressed_bytes(self):
        return self.decompressor.compressed_offset

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    def close(self):
        # closing the splitter closes the decompressor, which closes the source
        if self.elements is not None:
            self.elements.close()
            self.elements = None

    def __iter__(self):
        if self.elements is not None:
            raise ValueError('The dump is already being read.')
        self.elements = iter(self.splitter)
        return self.elements
