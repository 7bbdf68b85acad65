import os
import re
from urllib.parse import urlsplit

from wdfilter import settings

content_range_re = re.compile(r'^bytes\s+(?:(\d+)-(\d+)|\*)/(\d+|\*)$')

def dump_url(version=None):
    """
    URL of the JSON dump for a given version

    >>> dump_url('20240101')
    'https://dumps.wikimedia.org/wikidatawiki/entities/20240101-all.json.bz2'
    """
    return settings.DUMP_URL.format(version=version or settings.DUMP_VERSION)

def filename_from_url(url):
    """
    Last non-empty segment of the path of a URL

    >>> filename_from_url('https://dumps.wikimedia.org/wikidatawiki/entities/latest-all.json.bz2')
    'latest-all.json.bz2'
    >>> filename_from_url('https://example.com/dumps/')
    'dumps'
    """
    segments = [s for s in urlsplit(url).path.split('/') if s]
    if not segments:
        raise ValueError('Cannot derive a filename from "{}"'.format(url))
    return segments[-1]

def partial_path(directory, url):
    """
    Where an in-progress download of the URL is stored, so that
    an interrupted download can be found again and resumed.

    >>> partial_path('/tmp', 'https://example.com/latest-all.json.bz2')
    '/tmp/latest-all.json.bz2.part'
    """
    return os.path.join(directory, filename_from_url(url) + '.part')

def parse_content_range(header):
    """
    Parses a Content-Range header into (start, end, total).
    Unknown parts are None.

    >>> parse_content_range('bytes 100-199/1000')
    (100, 199, 1000)
    >>> parse_content_range('bytes */1000')
    (None, None, 1000)
    >>> parse_content_range('bytes 5-9/*')
    (5, 9, None)
    """
    match = content_range_re.match((header or '').strip())
    if not match:
        raise ValueError('Invalid Content-Range header: {!r}'.format(header))
    start, end, total = match.groups()
    return (
        int(start) if start is not None else None,
        int(end) if end is not None else None,
        int(total) if total != '*' else None,
    )

def human_bytes(n):
    """
    >>> human_bytes(512)
    '512 B'
    >>> human_bytes(3 * 1024 * 1024)
    '3.00 MiB'
    """
    if n < 1024:
        return '{} B'.format(n)
    value = float(n)
    for unit in ['KiB', 'MiB', 'GiB', 'TiB']:
        value /= 1024
        if value < 1024:
            break
    return '{:.2f} {}'.format(value, unit)
