"""
Dataset Loader Tests
Run with: python -m pytest tests/test_dataset_loader.py -v
"""

import io

import pytest
from openpyxl import Workbook

from workpaper import config
from workpaper.dataset_loader import load_dataset
from workpaper.errors import ValidationError


def make_xlsx(rows):
    wb = Workbook()
    ws = wb.active
    ws.title = "Inventory"
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestCsv:

    def test_reads_headers_and_text_cells(self):
        contents = b"Invoice No,Vendor Code,Amount\n00123,V1,100.50\n00123,V1,\n"
        dataset = load_dataset("ap.csv", contents)
        assert dataset.headers == ["Invoice No", "Vendor Code", "Amount"]
        assert dataset.rows == [["00123", "V1", "100.50"], ["00123", "V1", ""]]
        assert dataset.filename == "ap.csv"

    def test_latin1_fallback(self):
        contents = "Employee ID,Name\nE1,Jos\xe9\n".encode("latin-1")
        dataset = load_dataset("staff.CSV", contents)
        assert dataset.rows == [["E1", "José"]]


class TestXlsx:

    def test_reads_native_types(self):
        contents = make_xlsx([
            ["Item ID", "Qty on Hand"],
            ["SKU-1", 5],
            ["SKU-2", -2],
            ["SKU-3", None],
        ])
        dataset = load_dataset("stock.xlsx", contents)
        assert dataset.headers == ["Item ID", "Qty on Hand"]
        assert dataset.rows[1] == ["SKU-2", -2]
        assert dataset.rows[2] == ["SKU-3", None]


class TestRejections:

    def test_empty_file(self):
        with pytest.raises(ValidationError):
            load_dataset("a.csv", b"")

    def test_unsupported_extension(self):
        with pytest.raises(ValidationError):
            load_dataset("notes.txt", b"hello")

    def test_header_only(self):
        with pytest.raises(ValidationError):
            load_dataset("a.csv", b"Invoice Number\n")

    def test_too_large(self, monkeypatch):
        monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 10)
        with pytest.raises(ValidationError) as exc:
            load_dataset("a.csv", b"Invoice Number\nINV-000001\n")
        assert "too large" in exc.value.message

    def test_corrupt_workbook(self):
        with pytest.raises(ValidationError):
            load_dataset("broken.xlsx", b"definitely not a zip file")
