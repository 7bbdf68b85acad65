import io
import os
import unittest

from wdfilter.errors import SinkWriteError
from wdfilter.sink import OutputSink

class BrokenStream(io.BytesIO):
    def write(self, data):
        raise BrokenPipeError(32, 'Broken pipe')

class CountingStream(io.BytesIO):
    def __init__(self):
        super(CountingStream, self).__init__()
        self.flushes = 0

    def flush(self):
        self.flushes += 1
        super(CountingStream, self).flush()

class OutputSinkTest(unittest.TestCase):

    def test_lines_are_terminated_once(self):
        stream = io.BytesIO()
        with OutputSink(stream=stream) as sink:
            sink.write(b'{"id":"Q1"}\n')
            sink.write(b'{"id":"Q2"}')
            sink.write(b'"Q3"\r\n')
        self.assertEqual(stream.getvalue(), b'{"id":"Q1"}\n{"id":"Q2"}\n"Q3"\n')
        self.assertEqual(sink.lines_written, 3)
        self.assertFalse(stream.closed)

    def test_periodic_flush(self):
        stream = CountingStream()
        sink = OutputSink(stream=stream, flush_every=2)
        sink.open()
        for i in range(5):
            sink.write(b'line')
        self.assertEqual(stream.flushes, 2)
        sink.close()
        self.assertEqual(stream.flushes, 3)

    def test_write_to_file(self):
        import tempfile
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'out.ndjson')
            with OutputSink(path) as sink:
                sink.write(b'a')
                sink.write(b'b\n')
            with open(path, 'rb') as f:
                self.assertEqual(f.read(), b'a\nb\n')

    def test_broken_pipe(self):
        sink = OutputSink(stream=BrokenStream())
        with self.assertRaises(SinkWriteError) as cm:
            sink.write(b'line')
        self.assertEqual(cm.exception.exit_code, 7)
        self.assertIn('sink', str(cm.exception))

    def test_unwritable_destination(self):
        with self.assertRaises(SinkWriteError):
            with OutputSink('/nonexistent-directory/out.ndjson') as sink:
                sink.write(b'line')
