"""
Tests for the CSV sink.
"""
import csv

import pytest

from m365_export.errors import SinkWriteError
from m365_export.sink import APPEND, CREATE, CsvSink, format_cell, write_rows


def read_csv(path):
    with open(path, newline="", encoding="utf-8") as fh:
        return list(csv.reader(fh))


def test_create_then_read_back(tmp_path):
    path = tmp_path / "out.csv"
    rows = [
        {"Name": "Alice", "Enabled": True, "Size": 12},
        {"Name": "Bob", "Enabled": False, "Size": 3.5},
    ]
    assert write_rows(rows, path, CREATE, fieldnames=["Name", "Enabled", "Size"]) == 2
    assert read_csv(path) == [
        ["Name", "Enabled", "Size"],
        ["Alice", "True", "12"],
        ["Bob", "False", "3.5"],
    ]


def test_create_refuses_existing_file(tmp_path):
    path = tmp_path / "out.csv"
    path.write_text("keep me\n", encoding="utf-8")
    with pytest.raises(SinkWriteError, match="overwrite"):
        write_rows([{"a": 1}], path, CREATE, fieldnames=["a"])
    assert path.read_text(encoding="utf-8") == "keep me\n"


def test_create_with_overwrite_replaces_file(tmp_path):
    path = tmp_path / "out.csv"
    path.write_text("old\n", encoding="utf-8")
    write_rows([{"a": 1}], path, CREATE, fieldnames=["a"], overwrite=True)
    assert read_csv(path) == [["a"], ["1"]]


def test_append_writes_header_once(tmp_path):
    path = tmp_path / "geo.csv"
    fields = ["Url", "Multi Geo Location"]
    write_rows([{"Url": "a", "Multi Geo Location": "NAM"}], path, APPEND, fieldnames=fields)
    write_rows([{"Url": "b", "Multi Geo Location": "EUR"}], path, APPEND, fieldnames=fields)
    assert read_csv(path) == [fields, ["a", "NAM"], ["b", "EUR"]]


def test_append_rejects_header_drift(tmp_path):
    path = tmp_path / "geo.csv"
    write_rows([{"a": 1}], path, APPEND, fieldnames=["a"])
    with pytest.raises(SinkWriteError, match="does not match"):
        write_rows([{"a": 2, "b": 3}], path, APPEND, fieldnames=["a", "b"])


def test_missing_columns_are_blank(tmp_path):
    path = tmp_path / "out.csv"
    write_rows([{"b": "x"}], path, CREATE, fieldnames=["a", "b"])
    assert read_csv(path) == [["a", "b"], ["", "x"]]


def test_unknown_column_raises(tmp_path):
    path = tmp_path / "out.csv"
    with pytest.raises(SinkWriteError):
        write_rows([{"a": 1, "z": 2}], path, CREATE, fieldnames=["a"])


def test_header_is_union_of_row_keys_without_fieldnames(tmp_path):
    path = tmp_path / "out.csv"
    write_rows([{"a": 1}, {"b": 2, "a": 3}], path, CREATE)
    assert read_csv(path) == [["a", "b"], ["1", ""], ["3", "2"]]


def test_unwritable_path_raises(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(SinkWriteError):
        write_rows([{"a": 1}], blocker / "out.csv", CREATE, fieldnames=["a"])


def test_utf8_content(tmp_path):
    path = tmp_path / "out.csv"
    write_rows([{"Name": "Zoë Ångström"}], path, CREATE, fieldnames=["Name"])
    assert read_csv(path)[1] == ["Zoë Ångström"]


def test_write_on_closed_sink_raises(tmp_path):
    sink = CsvSink(tmp_path / "out.csv", ["a"])
    with pytest.raises(SinkWriteError):
        sink.write({"a": 1})


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    (True, "True"),
    (["a", "b"], "a;b"),
    ({"k": 1}, '{"k":1}'),
    ("text", "text"),
    (7, 7),
])
def test_format_cell(value, expected):
    assert format_cell(value) == expected
