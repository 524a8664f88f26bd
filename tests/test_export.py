# tests/test_export.py
import csv
import io
import json
from datetime import date

import pytest
from openpyxl import load_workbook

from utils.dsa_reporting.constants import CSV_COLUMNS, STATUS_NOT_REPORTED, STATUS_REPORTED
from utils.dsa_reporting.exceptions import ValidationError
from utils.dsa_reporting.export import (
    SalesExport,
    export_filename,
    parse_backup,
    to_csv,
    to_json_backup,
)
from utils.dsa_reporting.metrics import SalesMetrics


class TestCsv:

    def test_bom_header_and_quoting(self, make_record):
        text = to_csv([make_record('C1', '2024-01-01', name='Xuan', direct_volume=150)])

        assert text.startswith('\ufeff')
        lines = text[1:].splitlines()
        assert lines[0].split(',')[:3] == ['"ID"', '"DSA Code"', '"Name"']
        assert '"C1"' in lines[1]
        assert ',150,' in lines[1]

        rows = list(csv.reader(io.StringIO(text[1:])))
        assert rows[0] == [header for header, _ in CSV_COLUMNS]
        assert rows[1][1:3] == ['C1', 'Xuan']

    def test_unicode_names_survive(self, make_record):
        text = to_csv([make_record(name='Nguyễn Văn Xuân')])
        assert 'Nguyễn Văn Xuân' in text


class TestJsonBackup:

    def test_placeholders_are_not_backed_up(self, make_record):
        payload = json.loads(to_json_backup([
            make_record(id='real'),
            make_record(id='virt-u-dsa2-2024-01-01', status=STATUS_NOT_REPORTED),
        ]))
        assert [d['id'] for d in payload] == ['real']
        assert payload[0]['dsaCode'] == 'C1'

    def test_parse_valid_backup(self, make_record):
        content = to_json_backup([make_record(id='a', direct_volume=7), make_record('C2', id='b')])
        records, total = parse_backup(content.encode('utf-8'))
        assert total == 2
        assert [(r.id, r.direct_volume) for r in records] == [('a', 7), ('b', 0)]

    def test_invalid_rows_are_filtered(self):
        content = json.dumps([
            {'id': 'a', 'dsaCode': 'C1', 'reportDate': '2024-01-01', 'status': STATUS_REPORTED},
            {'id': 'b', 'dsaCode': 'C1', 'reportDate': '2024-01-02', 'status': 'Chưa báo cáo'},
            {'id': 'c', 'dsaCode': '', 'reportDate': '2024-01-03', 'status': STATUS_REPORTED},
            {'id': 'd', 'dsaCode': 'C1', 'reportDate': '2024-01-04', 'status': 'bogus'},
            'not a record',
        ])
        records, total = parse_backup(content)
        assert total == 5
        assert [(r.id, r.status) for r in records] == [('a', STATUS_REPORTED), ('b', STATUS_NOT_REPORTED)]

    @pytest.mark.parametrize("content, message", [
        ('{broken', "valid JSON"),
        ('{"id": "a"}', "must be a list"),
        ('[]', "empty"),
        ('[{"id": "a"}]', "No valid records"),
    ])
    def test_rejected_files(self, content, message):
        with pytest.raises(ValidationError, match=message):
            parse_backup(content)


def test_export_filenames():
    on = date(2024, 5, 6)
    assert export_filename('csv', on) == 'DSA_Report_2024-05-06.csv'
    assert export_filename('json', on) == 'backup_dsa_full_2024-05-06.json'
    assert export_filename('xlsx', on) == 'DSA_Report_2024-05-06.xlsx'


def test_excel_report(make_record):
    records = [
        make_record('C1', '2024-01-01', name='Xuan', direct_volume=100),
        make_record('C2', '2024-01-01', name='Yen', status=STATUS_NOT_REPORTED),
    ]
    stats = SalesMetrics(records).calculate_overview_metrics('2024-01-01', '2024-01-01', headcount=2)
    filters = {'start_date': '2024-01-01', 'end_date': '2024-01-01', 'status': 'all'}

    output = SalesExport().create_report(records, stats, filters)
    wb = load_workbook(output)

    assert wb.sheetnames == ['Summary', 'Records']
    summary = wb['Summary']
    assert summary['A1'].value == 'DSA Sales Report'
    assert summary['B3'].value == '2024-01-01 to 2024-01-01'

    sheet = wb['Records']
    assert sheet.max_row == 3
    assert [c.value for c in sheet[1]][:3] == ['ID', 'DSA Code', 'Name']
    assert sheet.cell(row=2, column=2).value == 'C1'
