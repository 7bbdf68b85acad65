import logging
import re

from wdfilter.errors import MalformedArrayError

logger = logging.getLogger(__name__)

QUOTE = ord('"')
BACKSLASH = ord('\\')
COMMA = ord(',')
OPEN_ARRAY = ord('[')
CLOSE_ARRAY = ord(']')
OPEN_OBJECT = ord('{')
CLOSE_OBJECT = ord('}')

WHITESPACE = b' \t\r\n'
ESCAPABLE = frozenset(b'"\\/bfnrtu')

# Outside of strings, only these bytes change the scanner state
structural_re = re.compile(rb'["\[\]{},]')
# Inside a string: the closing quote, an escape, or a raw control byte (invalid JSON)
string_re = re.compile(rb'["\\\x00-\x1f]')
non_whitespace_re = re.compile(rb'[^ \t\r\n]')

class ScanState(object):
    """
    Everything the splitter remembers between two chunks.

    `depth` counts the open brackets and braces, the outer array
    included: elements are separated at depth 1. `openers` holds the
    opening byte of each container still open inside the current
    element, so that closing brackets are matched by type. `buffer` holds the
    bytes of the element being accumulated, `offset` the number of
    bytes scanned before the current chunk.
    """
    __slots__ = ('depth', 'in_string', 'escaped', 'opened', 'closed',
                 'openers', 'buffer', 'offset', 'element_index', 'pending_comma')

    def __init__(self):
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.opened = False
        self.closed = False
        self.openers = bytearray()
        self.buffer = bytearray()
        self.offset = 0
        self.element_index = 0
        self.pending_comma = False

    def __repr__(self):
        return '<ScanState depth={} in_string={} offset={} elements={}>'.format(
            self.depth, self.in_string, self.offset, self.element_index)

def _error(state, message, pos):
    return MalformedArrayError(message, offset=state.offset + pos, element_index=state.element_index)

def _take(state, pos, at_end=False):
    """
    Returns the accumulated element, stripped of surrounding whitespace,
    and empties the buffer.
    """
    element = bytes(state.buffer).strip(WHITESPACE)
    del state.buffer[:]
    if not element:
        if at_end and not state.pending_comma:
            # "[]" or the closing bracket right after the last element
            return None
        raise _error(state, 'Empty element in array', pos)
    state.element_index += 1
    return element

def scan(state, chunk):
    """
    Scans one chunk of the document, generating the elements
    completed within it. The state is updated in place so that
    the next chunk carries on exactly where this one stopped.
    """
    pos = 0
    end = len(chunk)

    if not state.opened:
        match = non_whitespace_re.search(chunk)
        if match is None:
            state.offset += end
            return
        pos = match.start()
        if chunk[pos] != OPEN_ARRAY:
            raise _error(state, 'Document does not start with "[" (found {!r})'.format(chr(chunk[pos])), pos)
        state.opened = True
        state.depth = 1
        pos += 1

    # start of the part of this chunk that belongs to the current element
    segment = pos
    while pos < end:
        if state.closed:
            match = non_whitespace_re.search(chunk, pos)
            if match is not None:
                raise _error(state, 'Unexpected data after the end of the array', match.start())
            break

        if state.escaped:
            if chunk[pos] not in ESCAPABLE:
                raise _error(state, 'Invalid escape sequence "\\{}" in string'.format(chr(chunk[pos])), pos)
            state.escaped = False
            pos += 1
            continue

        if state.in_string:
            match = string_re.search(chunk, pos)
            if match is None:
                pos = end
                break
            pos = match.start()
            byte = chunk[pos]
            if byte == QUOTE:
                state.in_string = False
            elif byte == BACKSLASH:
                state.escaped = True
            else:
                raise _error(state, 'Unescaped control character 0x{:02x} in string'.format(byte), pos)
            pos += 1
            continue

        match = structural_re.search(chunk, pos)
        if match is None:
            pos = end
            break
        pos = match.start()
        byte = chunk[pos]
        if byte == QUOTE:
            state.in_string = True
        elif byte == OPEN_OBJECT or byte == OPEN_ARRAY:
            state.depth += 1
            state.openers.append(byte)
        elif byte == CLOSE_OBJECT or byte == CLOSE_ARRAY:
            if state.depth > 1:
                expected = OPEN_OBJECT if byte == CLOSE_OBJECT else OPEN_ARRAY
                if state.openers[-1] != expected:
                    raise _error(state, 'Mismatched "{}" closing "{}"'.format(chr(byte), chr(state.openers[-1])), pos)
                state.openers.pop()
                state.depth -= 1
            elif byte == CLOSE_OBJECT:
                raise _error(state, 'Unbalanced "}" at the top level of the array', pos)
            else:
                state.buffer += chunk[segment:pos]
                element = _take(state, pos, at_end=True)
                state.depth = 0
                state.closed = True
                state.pending_comma = False
                segment = pos + 1
                if element is not None:
                    yield element
        elif byte == COMMA and state.depth == 1:
            state.buffer += chunk[segment:pos]
            element = _take(state, pos)
            state.pending_comma = True
            segment = pos + 1
            yield element
        pos += 1

    if not state.closed:
        state.buffer += chunk[segment:end]
    state.offset += end

def finish(state):
    """
    Checks that the whole array was read once the input is exhausted.
    A truncated final element is dropped, never emitted.
    """
    if not state.opened:
        raise _error(state, 'Document is empty, expected "["', 0)
    if not state.closed:
        dropped = len(state.buffer)
        del state.buffer[:]
        raise _error(state, 'Input ended inside the array at depth {}, {} bytes of incomplete element discarded'.format(
            state.depth, dropped), 0)

class ArraySplitter(object):
    """
    Generates the top-level elements of a JSON array, as raw bytes,
    from an iterable of chunks of the document. Chunks are only
    pulled when the next element is requested.
    """

    def __init__(self, chunks):
        self.chunks = chunks
        self.state = ScanState()

    def __iter__(self):
        chunks = iter(self.chunks)
        try:
            for chunk in chunks:
                yield from scan(self.state, chunk)
        finally:
            close = getattr(chunks, 'close', None)
            if close is not None:
                close()
        finish(self.state)
        logger.debug('Split {} elements from {} bytes'.format(self.state.element_index, self.state.offset))
