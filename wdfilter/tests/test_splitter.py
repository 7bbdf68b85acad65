import json
import pytest

from wdfilter.errors import MalformedArrayError
from wdfilter.readers.splitter import ArraySplitter
from wdfilter.readers.splitter import ScanState
from wdfilter.readers.splitter import finish
from wdfilter.readers.splitter import scan
from .test_fixtures import SAMPLE_ENTITIES
from .test_fixtures import chunked
from .test_fixtures import tricky_entities
from .test_fixtures import wikidata_dump


def split(data, chunk_size=None):
    chunks = chunked(data, chunk_size) if chunk_size else [data]
    return list(ArraySplitter(chunks))


def test_split_wikidata_layout():
    elements = split(wikidata_dump(SAMPLE_ENTITIES))
    assert elements == [
        b'{"id":"Q1","labels":{"en":{"value":"universe"}}}',
        b'{"id":"Q2","labels":{"en":{"value":"Earth"}}}',
    ]


def test_elements_reproduce_the_array():
    entities = tricky_entities()
    data = json.dumps(entities, indent=2).encode('utf-8')
    elements = split(data, 97)

    assert len(elements) == len(entities)
    assert [json.loads(e) for e in elements] == entities
    assert json.loads(b'[' + b','.join(elements) + b']') == entities


@pytest.mark.parametrize('chunk_size', [1, 2, 3, 7, 64, 4096])
def test_chunk_boundaries_do_not_matter(chunk_size):
    data = wikidata_dump(tricky_entities(20))
    assert split(data, chunk_size) == split(data)


def test_escaped_backslash_before_quote():
    data = b'["a\\\\", "b\\"]", {"c": "\\\\\\""}]'
    assert split(data, 1) == [b'"a\\\\"', b'"b\\"]"', b'{"c": "\\\\\\""}']


def test_scalar_elements_and_whitespace():
    data = b' \n[ 1 ,\t"two" , true,null , [3, [4]] ]\n\n'
    assert split(data, 2) == [b'1', b'"two"', b'true', b'null', b'[3, [4]]']


def test_empty_array():
    assert split(b'[]') == []
    assert split(b'  [ \n ]  ') == []


def test_truncated_input_emits_only_complete_elements():
    data = wikidata_dump(tricky_entities(10))
    cut = data.index(b'"Q7"') + 10
    emitted = []
    with pytest.raises(MalformedArrayError) as excinfo:
        for element in ArraySplitter(chunked(data[:cut], 13)):
            emitted.append(element)

    assert [json.loads(e)['id'] for e in emitted] == ['Q{}'.format(i) for i in range(7)]
    assert excinfo.value.element_index == 7
    assert excinfo.value.offset == cut


def test_truncated_between_elements():
    with pytest.raises(MalformedArrayError):
        split(b'[{"a": 1},')


@pytest.mark.parametrize('data', [
    b'{"id": "Q1"}',
    b'',
    b'   \n',
    b'[1,,2]',
    b'[1,]',
    b'[,1]',
    b'[1]}',
    b'[1] 2',
    b'[{"a": 1}}]',
    b'[{"a":[1}],2]',
    b'[[1}]',
    b'["bad \\x escape"]',
    b'["raw\nnewline"]',
])
def test_malformed_documents(data):
    with pytest.raises(MalformedArrayError):
        split(data)


def test_error_reports_offset():
    with pytest.raises(MalformedArrayError) as excinfo:
        split(b'[1, 2,, 3]')
    assert excinfo.value.offset == 6
    assert excinfo.value.element_index == 2
    assert 'splitter' in str(excinfo.value)


def test_mismatched_brackets_are_rejected():
    with pytest.raises(MalformedArrayError) as excinfo:
        split(b'[{"a":[1}],2]', 3)
    assert excinfo.value.offset == 8
    assert excinfo.value.element_index == 0
    assert 'Mismatched' in str(excinfo.value)


def test_brackets_inside_strings_are_not_matched():
    assert split(b'[{"a":"[}"},["{]"]]', 2) == [b'{"a":"[}"}', b'["{]"]']


def test_scan_state_survives_chunks():
    state = ScanState()
    assert list(scan(state, b'[{"a": "x\\')) == []
    assert state.depth == 2
    assert state.in_string
    assert state.escaped

    assert list(scan(state, b'"y"}, 2')) == [b'{"a": "x\\"y"}']
    assert state.depth == 1
    assert not state.in_string
    assert state.offset == 17

    assert list(scan(state, b']')) == [b'2']
    assert state.closed
    finish(state)


def test_splitter_is_lazy():
    pulled = []

    def chunks():
        for chunk in [b'[1,', b'2,', b'3]']:
            pulled.append(chunk)
            yield chunk

    elements = iter(ArraySplitter(chunks()))
    assert next(elements) == b'1'
    assert pulled == [b'[1,']
    assert next(elements) == b'2'
    assert pulled == [b'[1,', b'2,']
