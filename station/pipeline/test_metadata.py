"""
Test suite for dataset.json parsing
"""

import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .errors import MetadataError
from .metadata import (
    DatasetExtractor,
    MetadataValue,
    PassRecord,
    UNKNOWN_SATELLITE,
    ValueKind,
    parse_rfc3339
)


class TestParseRfc3339(unittest.TestCase):
    """Test RFC 3339 timestamp parsing"""

    def test_zulu_suffix(self):
        parsed = parse_rfc3339("2024-01-15T10:30:00Z")
        self.assertEqual(parsed, datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))

    def test_offset_is_kept(self):
        parsed = parse_rfc3339("2024-01-15T12:30:00+02:00")
        self.assertEqual(parsed.astimezone(timezone.utc),
                         datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))

    def test_fractional_seconds(self):
        parsed = parse_rfc3339("2024-01-15T10:30:00.123456789Z")
        self.assertEqual(parsed.second, 0)
        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_naive_timestamp_rejected(self):
        with self.assertRaises(ValueError):
            parse_rfc3339("2024-01-15T10:30:00")

    def test_garbage_rejected(self):
        with self.assertRaises(ValueError):
            parse_rfc3339("yesterday")


class TestMetadataValue(unittest.TestCase):
    """Test the tagged metadata value"""

    def test_kinds(self):
        self.assertIs(MetadataValue.from_json(None).kind, ValueKind.NULL)
        self.assertIs(MetadataValue.from_json(True).kind, ValueKind.BOOL)
        self.assertIs(MetadataValue.from_json(3).kind, ValueKind.NUMBER)
        self.assertIs(MetadataValue.from_json(1.5).kind, ValueKind.NUMBER)
        self.assertIs(MetadataValue.from_json("x").kind, ValueKind.STRING)
        self.assertIs(MetadataValue.from_json([1]).kind, ValueKind.ARRAY)
        self.assertIs(MetadataValue.from_json({'a': 1}).kind, ValueKind.OBJECT)

    def test_nested_access(self):
        value = MetadataValue.from_json({'products': [{'name': 'AVHRR'}]})
        products = value.get('products').as_list()
        self.assertEqual(len(products), 1)
        self.assertEqual(products[0].get('name').as_str(), 'AVHRR')
        self.assertIsNone(products[0].get('name').as_number())

    def test_to_json_restores_plain_values(self):
        raw = {'norad': 33591, 'flags': [True, None], 'source': {'host': 'pi'}}
        self.assertEqual(MetadataValue.from_json(raw).to_json(), raw)


class TestDatasetExtractor(unittest.TestCase):
    """Test PassRecord extraction from dataset.json"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.dir_path = Path(self.temp_dir.name)
        self.extractor = DatasetExtractor()

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write(self, content) -> Path:
        path = self.dir_path / "dataset.json"
        if isinstance(content, str):
            path.write_text(content)
        else:
            path.write_text(json.dumps(content))
        return path

    def test_full_record(self):
        path = self._write({
            'timestamp': "2024-01-15T10:30:00Z",
            'satellite_name': "METEOR-M2 3",
            'norad': 57166,
            'frequency': 137.9,
        })
        record = self.extractor.extract(path)

        self.assertIsInstance(record, PassRecord)
        self.assertEqual(record.satellite_name, "METEOR-M2 3")
        self.assertEqual(record.timestamp, datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
        self.assertEqual(set(record.metadata), {'norad', 'frequency'})
        self.assertEqual(record.metadata['norad'].as_number(), 57166)

    def test_satellite_name_fallback_order(self):
        record = self.extractor.extract(self._write({'satellite': "X", 'name': "Y"}))
        self.assertEqual(record.satellite_name, "X")

        record = self.extractor.extract(self._write({'name': "Y"}))
        self.assertEqual(record.satellite_name, "Y")

    def test_empty_name_is_skipped(self):
        record = self.extractor.extract(self._write({'satellite_name': "", 'name': "NOAA 18"}))
        self.assertEqual(record.satellite_name, "NOAA 18")

    def test_unknown_satellite(self):
        record = self.extractor.extract(self._write({'satellite_name': 42}))
        self.assertEqual(record.satellite_name, UNKNOWN_SATELLITE)

    def test_missing_timestamp_uses_now(self):
        before = datetime.now(timezone.utc)
        record = self.extractor.extract(self._write({'satellite_name': "NOAA 19"}))
        after = datetime.now(timezone.utc)

        self.assertLessEqual(before - timedelta(seconds=1), record.timestamp)
        self.assertLessEqual(record.timestamp, after + timedelta(seconds=1))

    def test_bad_timestamp_uses_now(self):
        record = self.extractor.extract(self._write({'timestamp': "not a time"}))
        self.assertLess(abs(datetime.now(timezone.utc) - record.timestamp), timedelta(seconds=5))

    def test_consumed_keys_removed(self):
        record = self.extractor.extract(self._write({
            'timestamp': "2024-01-15T10:30:00Z",
            'satellite_name': "A",
            'satellite': "B",
            'name': "C",
            'products': ["AVHRR"],
        }))
        self.assertEqual(list(record.metadata), ['products'])
        self.assertEqual(json.loads(record.metadata_json()), {'products': ["AVHRR"]})

    def test_empty_object_gives_empty_metadata(self):
        record = self.extractor.extract(self._write({}))
        self.assertEqual(record.metadata, {})
        self.assertEqual(record.metadata_json(), "{}")

    def test_non_object_document_rejected(self):
        with self.assertRaises(MetadataError):
            self.extractor.extract(self._write([1, 2, 3]))

    def test_invalid_json_rejected(self):
        with self.assertRaises(MetadataError):
            self.extractor.extract(self._write("{not json"))

    def test_missing_file_rejected(self):
        with self.assertRaises(MetadataError):
            self.extractor.extract(self.dir_path / "missing.json")


if __name__ == '__main__':
    unittest.main()
