
class PipelineError(Exception):
    """
    Base class for the fatal errors of a filtering run.
    Each subclass names the stage it comes from and the
    exit status the command line reports for it.
    """
    stage = 'pipeline'
    exit_code = 1

    def __init__(self, message, offset=None, element_index=None):
        self.message = message
        self.offset = offset
        self.element_index = element_index
        super(PipelineError, self).__init__(self._describe())

    def _describe(self):
        location = []
        if self.offset is not None:
            location.append('byte offset {}'.format(self.offset))
        if self.element_index is not None:
            location.append('element #{}'.format(self.element_index))
        msg = '[{}] {}'.format(self.stage, self.message)
        if location:
            msg += ' (at {})'.format(', '.join(location))
        return msg

class SourceUnavailableError(PipelineError):
    stage = 'source'
    exit_code = 3

    def __init__(self, message, transient=False, offset=None):
        self.transient = transient
        super(SourceUnavailableError, self).__init__(message, offset=offset)

class CorruptStreamError(PipelineError):
    stage = 'decompression'
    exit_code = 4

class MalformedArrayError(PipelineError):
    stage = 'splitter'
    exit_code = 5

class FilterProcessError(PipelineError):
    stage = 'filter'
    exit_code = 6

    def __init__(self, message, returncode=None, stderr='', element_index=None):
        self.returncode = returncode
        self.stderr = stderr
        if returncode is not None:
            message = '{} (exit status {})'.format(message, returncode)
        if stderr:
            message = '{}: {}'.format(message, stderr.strip())
        super(FilterProcessError, self).__init__(message, element_index=element_index)

class SinkWriteError(PipelineError):
    stage = 'sink'
    exit_code = 7

class PipelineCancelled(PipelineError):
    exit_code = 130

    def __init__(self, reason=None):
        self.reason = reason
        super(PipelineCancelled, self).__init__('cancelled: {}'.format(reason or 'no reason given'))
