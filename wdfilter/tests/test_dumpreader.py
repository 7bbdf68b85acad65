import bz2
import json
import re
import unittest
import tempfile
import os

from wdfilter.cancellation import CancellationToken
from wdfilter.errors import CorruptStreamError
from wdfilter.errors import MalformedArrayError
from wdfilter.readers.dumpreader import WikidataDumpReader
from .test_fixtures import tricky_entities
from .test_fixtures import wikidata_dump

class WikidataDumpReaderTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmpdir = tempfile.TemporaryDirectory()
        cls.entities = tricky_entities(100)
        cls.dump_fname = os.path.join(cls.tmpdir.name, 'sample_wikidata_items.json.bz2')
        with open(cls.dump_fname, 'wb') as f:
            f.write(bz2.compress(wikidata_dump(cls.entities)))

    @classmethod
    def tearDownClass(cls):
        cls.tmpdir.cleanup()

    def test_read_dump(self):
        count = 0
        entity_ids = re.compile(r'[QPL]\d+')
        with WikidataDumpReader.open(CancellationToken(), fname=self.dump_fname, decompressed_chunk_size=1000) as reader:
            for element in reader:
                count += 1
                assert entity_ids.match(json.loads(element)['id']) is not None
            self.assertEqual(reader.element_index, 100)
        assert count == 100

    def test_truncated_dump(self):
        truncated = os.path.join(self.tmpdir.name, 'truncated.json.bz2')
        data = wikidata_dump(self.entities)
        with open(truncated, 'wb') as f:
            f.write(bz2.compress(data[:len(data) // 2]))

        elements = []
        with self.assertRaises(MalformedArrayError):
            with WikidataDumpReader.open(CancellationToken(), fname=truncated) as reader:
                for element in reader:
                    elements.append(json.loads(element))
        self.assertEqual(elements, self.entities[:len(elements)])
        self.assertTrue(0 < len(elements) < 100)

    def test_not_compressed(self):
        plain = os.path.join(self.tmpdir.name, 'plain.json')
        with open(plain, 'wb') as f:
            f.write(wikidata_dump(self.entities))
        with self.assertRaises(CorruptStreamError):
            with WikidataDumpReader.open(CancellationToken(), fname=plain) as reader:
                list(reader)

    def test_close_releases_source(self):
        closed = []

        def source():
            try:
                yield bz2.compress(wikidata_dump(self.entities))
            finally:
                closed.append(True)

        with WikidataDumpReader(source(), CancellationToken()) as reader:
            next(iter(reader))
        self.assertEqual(closed, [True])
