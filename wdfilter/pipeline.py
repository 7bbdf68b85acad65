import logging
import time

from wdfilter import settings
from wdfilter.filters import to_filter_line
from wdfilter.utils import human_bytes

logger = logging.getLogger(__name__)

class PipelineStats(object):
    def __init__(self):
        self.elements = 0
        self.lines = 0
        self.compressed_bytes = 0
        self.elapsed = 0.0

    def __repr__(self):
        return '<PipelineStats elements={} lines={} compressed_bytes={}>'.format(
            self.elements, self.lines, self.compressed_bytes)

def _filter_lines(reader, stats, log_every):
    """
    Turns the entities of the dump into filter input lines,
    logging progress along the way.
    """
    elements = iter(reader)
    try:
        for element in elements:
            stats.elements += 1
            if stats.elements % log_every == 0:
                logger.info('Processed {} entities ({} compressed)'.format(
                    stats.elements, human_bytes(reader.compressed_bytes)))
            yield to_filter_line(element)
    finally:
        elements.close()

def run_pipeline(reader, transducer, sink, token, log_every=None):
    """
    Streams every entity of the dump through the filter and writes
    the results to the sink, in order.

    :param reader: a WikidataDumpReader
    :param transducer: the LineTransducer applied to the entities
    :param sink: the OutputSink receiving the filtered lines
    :param token: the CancellationToken of the run
    :returns: a PipelineStats object
    """
    stats = PipelineStats()
    start = time.monotonic()
    with sink, reader:
        stats.lines = transducer.transduce(
            _filter_lines(reader, stats, log_every or settings.LOG_EVERY), sink, token)
    stats.compressed_bytes = reader.compressed_bytes
    stats.elapsed = time.monotonic() - start
    logger.info('Finished! Processed {} entities ({} compressed) and outputted {} lines in {:.1f}s'.format(
        stats.elements, human_bytes(stats.compressed_bytes), stats.lines, stats.elapsed))
    return stats
