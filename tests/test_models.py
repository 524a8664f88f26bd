# tests/test_models.py
from datetime import date, datetime

from utils.dsa_reporting.constants import APPROVAL_APPROVED, STATUS_NOT_REPORTED, STATUS_REPORTED
from utils.dsa_reporting.models import (
    SalesRecord,
    User,
    generate_record_id,
    parse_iso_date,
    to_iso_date,
)


def test_record_from_document():
    record = SalesRecord.from_dict({
        'id': 'abc',
        'dsaCode': ' C1 ',
        'reportDate': '2024-02-03T08:00:00',
        'smName': 'Sarah',
        'directVolume': 1200,
        'directAppCRC': '2',
        'directVolumeFEOL': None,
        'callsMonth': 'n/a',
    })
    assert record.dsa_code == 'C1'
    assert record.report_date == '2024-02-03'
    assert record.sm_name == 'Sarah'
    assert record.direct_volume == 1200
    assert record.direct_app_crc == 2
    assert record.direct_volume_feol == 0
    assert record.calls_month == 0
    assert record.status == STATUS_REPORTED
    assert record.approval_status == APPROVAL_APPROVED


def test_legacy_statuses():
    assert SalesRecord.from_dict({'id': '1', 'status': 'Đã báo cáo'}).status == STATUS_REPORTED
    assert SalesRecord.from_dict({'id': '2', 'status': 'Chưa báo cáo'}).status == STATUS_NOT_REPORTED
    assert SalesRecord.from_dict({'id': '3', 'status': 'Ngày 01/02'}).is_reported


def test_document_keys_and_none_stripping():
    doc = SalesRecord(id='x', dsa_code='C1', report_date='2024-01-01', direct_loan_crc=3).to_dict()
    assert doc['dsaCode'] == 'C1'
    assert doc['directLoanCRC'] == 3
    assert 'proofImage' not in doc

    user_doc = User(id='u', username='u', name='U', role='DSS').to_dict()
    assert user_doc == {'id': 'u', 'username': 'u', 'name': 'U', 'role': 'DSS'}


def test_user_role_is_normalised():
    user = User.from_dict({'id': 'u', 'username': 'u', 'name': 'U', 'role': ' dsa ', 'dsaCode': 'C7'})
    assert user.role == 'DSA'
    assert user.is_dsa
    assert user.dsa_code == 'C7'


def test_record_properties(make_record):
    record = make_record('C1', '2024-01-01', direct_volume=10, direct_volume_feol=5)
    assert record.natural_key == ('C1', '2024-01-01')
    assert record.total_volume == 15
    assert not record.is_placeholder

    updated = record.copy(direct_volume=20)
    assert updated.total_volume == 25
    assert record.direct_volume == 10


def test_dates():
    assert to_iso_date(date(2024, 3, 9)) == '2024-03-09'
    assert to_iso_date(datetime(2024, 3, 9, 23, 59)) == '2024-03-09'
    assert parse_iso_date('2024-03-09') == date(2024, 3, 9)


def test_generated_ids_are_unique():
    ids = {generate_record_id() for _ in range(200)}
    assert len(ids) == 200
