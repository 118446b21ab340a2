"""Tests for the CSV and JSON Lines sinks."""

import csv
import json
import os
import shutil
import tempfile
import unittest

from product_scraper.models import Price, ProductRecord
from product_scraper.storage import SHEET_HEADERS, CsvStorage, JsonlStorage, record_to_row


def _record(item_id: str, **overrides) -> ProductRecord:
    """Helper to build a ProductRecord with sensible defaults."""
    defaults = dict(
        name=f"Item {item_id}",
        item_id=item_id,
        canonical_link=f"https://www.amazon.com/dp/{item_id}",
        scraped_at="2024-05-01T12:00:00Z",
        price=Price("$19.99", 19.99),
        image_urls=("https://img.example.com/a.jpg", "https://img.example.com/b.jpg"),
        rating=4.5,
        review_count=12,
        referral_link=f"https://www.amazon.com/dp/{item_id}?tag=t-20",
        availability="In Stock",
    )
    defaults.update(overrides)
    return ProductRecord(**defaults)


class StorageTestCase(unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)


class TestRecordToRow(unittest.TestCase):
    """Verify the flattened row layout."""

    def test_row_follows_headers(self):
        row = record_to_row(_record("B0AAAAAAA1", description="Solid"))
        self.assertEqual(len(row), len(SHEET_HEADERS))
        self.assertEqual(row[SHEET_HEADERS.index("Product Name")], "Item B0AAAAAAA1")
        self.assertEqual(row[SHEET_HEADERS.index("Images")], "https://img.example.com/a.jpg, https://img.example.com/b.jpg")
        self.assertEqual(row[SHEET_HEADERS.index("Rating")], "4.5")
        self.assertEqual(row[SHEET_HEADERS.index("Reviews")], "12")
        self.assertEqual(row[SHEET_HEADERS.index("ASIN")], "B0AAAAAAA1")
        self.assertEqual(row[SHEET_HEADERS.index("Description")], "Solid")

    def test_missing_rating_rendered_as_na(self):
        row = record_to_row(_record("B0AAAAAAA1", rating=None, review_count=0))
        self.assertEqual(row[SHEET_HEADERS.index("Rating")], "N/A")
        self.assertEqual(row[SHEET_HEADERS.index("Reviews")], "0")
        self.assertEqual(row[SHEET_HEADERS.index("Description")], "")


class TestCsvStorage(StorageTestCase):
    """Verify header handling for overwrite and append."""

    def _rows(self, storage, target):
        with open(storage.path_for(target), "r", encoding="utf-8", newline="") as f:
            return list(csv.reader(f))

    def test_overwrite_writes_header(self):
        storage = CsvStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1")], "Products", overwrite=True)
        rows = self._rows(storage, "Products")
        self.assertEqual(rows[0], SHEET_HEADERS)
        self.assertEqual(len(rows), 2)

    def test_append_keeps_single_header(self):
        storage = CsvStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1")], "Products", overwrite=True)
        storage.write_records([_record("B0BBBBBBB2"), _record("B0CCCCCCC3")], "Products")
        rows = self._rows(storage, "Products")
        self.assertEqual(len(rows), 4)
        self.assertEqual(sum(1 for r in rows if r == SHEET_HEADERS), 1)

    def test_overwrite_replaces_previous_rows(self):
        storage = CsvStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1"), _record("B0BBBBBBB2")], "Products", overwrite=True)
        storage.write_records([_record("B0CCCCCCC3")], "Products", overwrite=True)
        rows = self._rows(storage, "Products")
        self.assertEqual([r[SHEET_HEADERS.index("ASIN")] for r in rows[1:]], ["B0CCCCCCC3"])

    def test_append_to_new_target_writes_header(self):
        storage = CsvStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1")], "Fresh")
        self.assertEqual(self._rows(storage, "Fresh")[0], SHEET_HEADERS)

    def test_target_name_sanitised(self):
        storage = CsvStorage(self.directory)
        self.assertEqual(storage.path_for("My Sheet/1"), os.path.join(self.directory, "My_Sheet_1.csv"))


class TestJsonlStorage(StorageTestCase):
    """Verify background writes are flushed on close."""

    def test_records_written_after_close(self):
        storage = JsonlStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1")], "Products", overwrite=True)
        storage.write_records([_record("B0BBBBBBB2")], "Products")
        storage.close()
        with open(storage.path_for("Products"), "r", encoding="utf-8") as f:
            lines = [json.loads(line) for line in f]
        self.assertEqual([line["item_id"] for line in lines], ["B0AAAAAAA1", "B0BBBBBBB2"])
        self.assertEqual(lines[0]["price"], {"display": "$19.99", "amount": 19.99})
        self.assertIsInstance(lines[0]["image_urls"], list)

    def test_overwrite_truncates(self):
        storage = JsonlStorage(self.directory)
        storage.write_records([_record("B0AAAAAAA1")], "Products", overwrite=True)
        storage.write_records([_record("B0BBBBBBB2")], "Products", overwrite=True)
        storage.close()
        with open(storage.path_for("Products"), "r", encoding="utf-8") as f:
            self.assertEqual(len(f.readlines()), 1)


if __name__ == "__main__":
    unittest.main()
