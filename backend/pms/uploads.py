# Overview: Turns uploaded CSV/JSON/Excel files (or a JSON rows array) into a list of row dicts.

"""
Upload parsing

Only the mechanics live here: every endpoint that takes tabular input gets
list[dict] rows keyed by the header names as written. Header aliasing and
validation belong to the import schemas of each service.
"""

import csv
import io
import json
import zipfile

from flask import request
from openpyxl import load_workbook

from .validation import ValidationError


EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


def _rows_from_excel(stream) -> list[dict]:
    wb = load_workbook(stream, data_only=True, read_only=True)
    try:
        sheet = wb.active
        data = list(sheet.values)
    finally:
        wb.close()
    if not data:
        return []
    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    rows = []
    for values in data[1:]:
        if values is None or all(v is None or v == "" for v in values):
            continue
        rows.append({headers[i]: values[i] for i in range(min(len(headers), len(values))) if headers[i]})
    return rows


def parse_file(file) -> list[dict]:
    """Rows of an uploaded file; the format is taken from the extension."""
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        try:
            text = file.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV files must be UTF-8 encoded")
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]
    if ext == "json":
        try:
            rows = json.load(file.stream)
        except ValueError:
            raise ValidationError("Uploaded JSON could not be parsed")
        if isinstance(rows, dict):
            rows = rows.get("rows", [])
        if not isinstance(rows, list):
            raise ValidationError("Uploaded JSON must be a list of rows")
        return rows
    if ext in EXCEL_EXTENSIONS:
        try:
            return _rows_from_excel(file.stream)
        except (OSError, ValueError, KeyError, zipfile.BadZipFile) as e:
            raise ValidationError(f"Uploaded workbook could not be read: {e}")
    raise ValidationError("Unsupported file format; upload .csv, .json or .xlsx")


def rows_from_request() -> tuple[list[dict], str | None, int | None]:
    """
    Rows from the current request: a multipart "file" or a JSON body {"rows": [...]}.

    Returns (rows, file_name, file_size).
    """
    if "file" in request.files:
        file = request.files["file"]
        rows = parse_file(file)
        size = request.content_length
        return rows, file.filename, size

    data = request.get_json(silent=True) or {}
    rows = data.get("rows")
    if not isinstance(rows, list):
        raise ValidationError("Provide a file upload or a JSON body with a rows list")
    return rows, data.get("file_name"), None


def form_or_json() -> dict:
    """Scalar parameters sent alongside an upload, from the form or the JSON body."""
    if request.files:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}
