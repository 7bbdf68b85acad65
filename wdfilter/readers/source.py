import logging
import os
import sys
import requests

from time import sleep
from wdfilter import settings
from wdfilter.errors import SourceUnavailableError
from wdfilter.utils import filename_from_url
from wdfilter.utils import human_bytes
from wdfilter.utils import parse_content_range
from wdfilter.utils import partial_path

logger = logging.getLogger(__name__)

TRANSIENT_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

class TransientDownloadError(Exception):
    """
    A download failure worth retrying: truncated body, server error
    or rate limiting.
    """
    pass

class LocalFileSource(object):
    """
    Generates the compressed bytes of a local file, chunk by chunk.
    The filename '-' reads from the standard input.
    """

    def __init__(self, fname, token, chunk_size=None):
        self.fname = fname
        self.token = token
        self.chunk_size = chunk_size or settings.READ_CHUNK_SIZE

    def __iter__(self):
        if self.fname == '-':
            yield from self._read(sys.stdin.buffer)
            return
        try:
            f = open(self.fname, 'rb')
        except OSError as e:
            raise SourceUnavailableError('Could not open "{}": {}'.format(self.fname, e))
        with f:
            yield from self._read(f)

    def _read(self, f):
        offset = 0
        while True:
            self.token.raise_if_cancelled()
            try:
                chunk = f.read(self.chunk_size)
            except OSError as e:
                raise SourceUnavailableError('Could not read "{}": {}'.format(self.fname, e), offset=offset)
            if not chunk:
                return
            offset += len(chunk)
            yield chunk

class DownloadSource(object):
    """
    Generates the compressed bytes of a remote dump while it is
    being downloaded. Every chunk is appended to a partial file
    before being handed downstream, so that an interrupted download
    can be resumed with a Range request. Once complete, the partial
    file is renamed to its final name.
    """

    def __init__(self,
                 url,
                 token,
                 directory=None,
                 resume=False,
                 chunk_size=None,
                 retries=None,
                 delay=None,
                 timeout=None,
                 session=None):
        self.url = url
        self.token = token
        self.directory = directory or settings.DOWNLOAD_DIR
        self.resume = resume
        self.chunk_size = chunk_size or settings.READ_CHUNK_SIZE
        self.retries = settings.RETRIES if retries is None else retries
        self.delay = settings.RETRY_DELAY if delay is None else delay
        self.timeout = timeout or settings.TIMEOUT
        self.session = session or requests.Session()
        self.partial_path = partial_path(self.directory, url)
        self.final_path = os.path.join(self.directory, filename_from_url(url))

    def download(self):
        """
        Downloads the whole file without decompressing it.
        Returns the path of the downloaded file.
        """
        for _ in self:
            pass
        return self.final_path

    def __iter__(self):
        try:
            out = open(self.partial_path, 'ab' if self.resume else 'wb')
        except OSError as e:
            raise SourceUnavailableError('Could not write "{}": {}'.format(self.partial_path, e))
        with out:
            offset = out.tell()
            if offset:
                logger.info('Resuming download of {} after {}'.format(self.url, human_bytes(offset)))
            else:
                logger.info('Downloading {} to {}'.format(self.url, self.partial_path))

            replayed = False
            attempt = 0
            while True:
                self.token.raise_if_cancelled()
                try:
                    response, skip, total = self._request(offset)
                    if not replayed:
                        # the bytes already on disk come first, the decompressor needs them
                        yield from self._replay(offset)
                        replayed = True
                    if response is None:
                        break
                    with response:
                        for chunk in response.iter_content(self.chunk_size):
                            self.token.raise_if_cancelled()
                            if skip:
                                dropped = min(skip, len(chunk))
                                chunk = chunk[dropped:]
                                skip -= dropped
                                if not chunk:
                                    continue
                            out.write(chunk)
                            offset += len(chunk)
                            yield chunk
                    if total is not None and offset < total:
                        raise TransientDownloadError('received {} of {} bytes'.format(offset, total))
                    break
                except TRANSIENT_EXCEPTIONS + (TransientDownloadError,) as e:
                    out.flush()
                    attempt += 1
                    logger.warning(e)
                    if attempt > self.retries:
                        logger.error('Failed to download {}'.format(self.url))
                        raise SourceUnavailableError(
                            'Could not download {}: {}'.format(self.url, e),
                            transient=True, offset=offset)
                    sleep_time = attempt * self.delay
                    logger.info('Retrying download in {} (resuming at byte {})'.format(sleep_time, offset))
                    sleep(sleep_time)

        os.replace(self.partial_path, self.final_path)
        logger.info('Downloaded {} to {}'.format(human_bytes(offset), self.final_path))

    def _request(self, offset):
        """
        Starts a GET request for the bytes after offset.
        Returns the response (None if nothing is left to download),
        the number of leading body bytes to discard and the total
        size of the file when the server announces it.
        """
        headers = {}
        if offset:
            headers['Range'] = 'bytes={}-'.format(offset)
        response = self.session.get(self.url, headers=headers, stream=True, timeout=self.timeout)

        if offset and response.status_code == 416:
            response.close()
            _, _, total = parse_content_range(response.headers.get('Content-Range', 'bytes */*'))
            if total != offset:
                raise SourceUnavailableError(
                    'Partial file "{}" ({} bytes) does not match remote size {}'.format(
                        self.partial_path, offset, total), offset=offset)
            logger.info('Partial file "{}" is already complete'.format(self.partial_path))
            return None, 0, total

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            response.close()
            if response.status_code >= 500 or response.status_code == 429:
                raise TransientDownloadError(e)
            raise SourceUnavailableError('Failed to GET from "{}": {}'.format(self.url, e), offset=offset)

        length = response.headers.get('Content-Length')
        length = int(length) if length is not None else None
        if not offset:
            return response, 0, length

        if response.status_code == 206:
            try:
                start, _, total = parse_content_range(response.headers.get('Content-Range'))
            except ValueError as e:
                response.close()
                raise SourceUnavailableError(str(e), offset=offset)
            if start != offset:
                response.close()
                raise SourceUnavailableError(
                    'Resumed range starts at {} instead of {}'.format(start, offset), offset=offset)
            if total is None and length is not None:
                total = offset + length
            return response, 0, total

        logger.warning('Server ignored the Range request, skipping the first {} bytes'.format(offset))
        return response, offset, length

    def _replay(self, length):
        """
        Reads back the first bytes of the partial file.
        """
        if not length:
            return
        with open(self.partial_path, 'rb') as f:
            remaining = length
            while remaining:
                self.token.raise_if_cancelled()
                chunk = f.read(min(self.chunk_size, remaining))
                if not chunk:
                    raise SourceUnavailableError(
                        'Partial file "{}" shrank while resuming'.format(self.partial_path))
                remaining -= len(chunk)
                yield chunk
