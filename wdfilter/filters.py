import logging
import subprocess
import tempfile
import threading

from wdfilter import settings
from wdfilter.errors import FilterProcessError
from wdfilter.errors import PipelineCancelled
from wdfilter.errors import PipelineError
from wdfilter.errors import SinkWriteError

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ['ndjson', 'text', 'csv']

# Only the end of a long error output is kept in failure reports
MAX_STDERR_BYTES = 64 * 1024

def jq_command(expression, output_format='ndjson', continue_on_error=False, jq=None):
    """
    Builds the command line running jq on one entity per input line.

    :param output_format: 'ndjson' for compact JSON values, 'text' for raw
        strings, 'csv' to format the arrays produced by the expression as CSV rows.
    :param continue_on_error: output null instead of failing for entities
        the expression cannot process, or that are not valid JSON. Lines are
        then read as raw strings and parsed by the expression itself.
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError('Unknown output format "{}"'.format(output_format))
    if output_format == 'csv':
        expression = '({}) | @csv'.format(expression)
    flags = ['-c' if output_format == 'ndjson' else '-r']
    if continue_on_error:
        expression = 'try (fromjson | ({})) catch null'.format(expression)
        flags.insert(0, '-R')
    return [jq or settings.JQ, '--unbuffered'] + flags + [expression]

def to_filter_line(element):
    """
    Turns an element into a single line. Raw line breaks can only
    appear between tokens (they are invalid inside JSON strings),
    so they are replaced by spaces.
    """
    if b'\n' in element or b'\r' in element:
        element = element.replace(b'\r', b' ').replace(b'\n', b' ')
    return element

class LineTransducer(object):
    """
    Something that turns an ordered sequence of input lines into an
    ordered sequence of output lines, written to a sink.
    """

    def transduce(self, lines, sink, token):
        """
        Consumes the lines (bytes, without terminator) and writes the
        results to the sink. Returns the number of result lines written.
        """
        raise NotImplementedError

class PythonFilter(LineTransducer):
    """
    Runs a Python function on each line, in-process. The function
    returns an iterable of output lines (possibly empty).
    """

    def __init__(self, function):
        self.function = function

    def transduce(self, lines, sink, token):
        written = 0
        index = 0
        for index, line in enumerate(lines, 1):
            token.raise_if_cancelled()
            try:
                results = list(self.function(line))
            except Exception as e:
                raise FilterProcessError('Filter function failed', stderr=repr(e), element_index=index)
            for result in results:
                sink.write(result)
                written += 1
        return written

class _Feeder(threading.Thread):
    """
    Writes the input lines to the standard input of the filter,
    and closes it once they are exhausted.
    """

    def __init__(self, lines, stdin, token):
        super(_Feeder, self).__init__(name='wdfilter-feeder', daemon=True)
        self.lines = lines
        self.stdin = stdin
        self.token = token
        self.fed = 0
        self.exhausted = False
        self.input_closed = False
        self.error = None

    def run(self):
        lines = iter(self.lines)
        try:
            for line in lines:
                if self.token.cancelled:
                    return
                self.stdin.write(line)
                self.stdin.write(b'\n')
                self.fed += 1
            self.exhausted = True
        except BrokenPipeError:
            self.input_closed = True
        except BaseException as e:
            # reported by the supervising thread
            self.error = e
        finally:
            close = getattr(lines, 'close', None)
            try:
                if close is not None:
                    close()
            except BaseException as e:
                self.error = self.error or e
            try:
                self.stdin.close()
            except BrokenPipeError:
                self.input_closed = True
            except OSError as e:
                self.error = self.error or e

class _Drainer(threading.Thread):
    """
    Forwards the complete lines printed by the filter to the sink.
    """

    def __init__(self, stdout, sink, token):
        super(_Drainer, self).__init__(name='wdfilter-drainer', daemon=True)
        self.stdout = stdout
        self.sink = sink
        self.token = token
        self.written = 0
        self.tail = None
        self.error = None

    def run(self):
        try:
            for line in self.stdout:
                if self.token.cancelled:
                    return
                if not line.endswith(b'\n'):
                    # only forwarded if the filter exits cleanly
                    self.tail = line
                    return
                self.sink.write(line)
                self.written += 1
        except SinkWriteError as e:
            self.error = e
            self.token.cancel(str(e))
        except BaseException as e:
            self.error = e
            self.token.cancel('output of the filter could not be read: {}'.format(e))

class FilterProcess(LineTransducer):
    """
    Runs an external filter program. Input lines are written to its
    standard input by a feeder thread while a drainer thread forwards
    its standard output to the sink, so that neither pipe can fill up
    and block the other. The standard error is captured in a temporary
    file and only read back to report failures.
    """

    poll_interval = 0.1

    def __init__(self, command, kill_timeout=None):
        self.command = command
        self.kill_timeout = settings.KILL_TIMEOUT if kill_timeout is None else kill_timeout

    def transduce(self, lines, sink, token):
        with tempfile.TemporaryFile() as stderr:
            try:
                process = subprocess.Popen(self.command,
                                           stdin=subprocess.PIPE,
                                           stdout=subprocess.PIPE,
                                           stderr=stderr)
            except OSError as e:
                raise FilterProcessError('Could not start filter {!r}: {}'.format(self.command[0], e))
            logger.debug('Started filter {} (pid {})'.format(self.command, process.pid))

            feeder = _Feeder(lines, process.stdin, token)
            drainer = _Drainer(process.stdout, sink, token)
            try:
                feeder.start()
                drainer.start()
                self._supervise(process, [feeder, drainer], token)
            except BaseException:
                token.cancel('interrupted')
                raise
            finally:
                self._terminate(process)
                feeder.join()
                drainer.join()
                process.stdout.close()

            return self._outcome(process, feeder, drainer, stderr, sink, token)

    def _supervise(self, process, threads, token):
        """
        Waits for both threads, terminating the process as soon as
        the run is cancelled so that blocked pipes are released.
        """
        while any(t.is_alive() for t in threads):
            if token.cancelled and process.poll() is None:
                self._terminate(process)
            for t in threads:
                t.join(self.poll_interval)
        # nothing drains stdout any more: a cancelled filter may be blocked on it
        while process.poll() is None:
            if token.cancelled:
                self._terminate(process)
            else:
                token.wait(self.poll_interval)

    def _terminate(self, process):
        if process.poll() is not None:
            return
        logger.info('Terminating filter (pid {})'.format(process.pid))
        process.terminate()
        try:
            process.wait(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            logger.warning('Filter did not terminate, killing it')
            process.kill()
            process.wait()

    def _outcome(self, process, feeder, drainer, stderr, sink, token):
        if drainer.error is not None:
            raise drainer.error
        if feeder.error is not None:
            raise feeder.error
        if token.cancelled:
            raise PipelineCancelled(token.reason)

        if process.returncode != 0:
            raise FilterProcessError('Filter failed', returncode=process.returncode,
                                     stderr=self._read_stderr(stderr), element_index=feeder.fed)
        if feeder.input_closed or not feeder.exhausted:
            raise FilterProcessError('Filter closed its input before consuming all elements',
                                     returncode=process.returncode,
                                     stderr=self._read_stderr(stderr), element_index=feeder.fed)

        written = drainer.written
        if drainer.tail:
            sink.write(drainer.tail)
            written += 1
        return written

    def _read_stderr(self, stderr):
        stderr.flush()
        size = stderr.seek(0, 2)
        stderr.seek(max(0, size - MAX_STDERR_BYTES))
        return stderr.read().decode('utf-8', errors='replace')
