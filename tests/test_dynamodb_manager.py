"""Unit tests for DynamoDB manager."""
from unittest.mock import Mock

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from moto import mock_aws

from processor.models import SyncResult, TravelRecord
from storage.dynamodb_manager import DynamoDBManager


@pytest.fixture
def aws_env(monkeypatch):
    """Point boto3 at fake credentials and a fixed region."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table(aws_env):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName='test-travel-records',
            KeySchema=[
                {'AttributeName': 'record_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'record_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def dynamodb_manager(dynamodb_table):
    """Create DynamoDBManager instance with mock table."""
    return DynamoDBManager('test-travel-records')


@pytest.fixture
def travelers(make_record):
    return [
        make_record(name=f'Traveler {i}', departure_time=f'{10 + i % 10}:00',
                    contact=f'900000{i:04d}')
        for i in range(30)
    ]


def test_load_all_empty_table(dynamodb_manager):
    """Test load_all returns an empty list for an empty table."""
    assert dynamodb_manager.load_all() == []


def test_replace_all_adds_records(dynamodb_manager, travelers):
    """Test replace_all with more records than one batch."""
    result = dynamodb_manager.replace_all(travelers)

    assert result == SyncResult(added=30, updated=0, deleted=0, errors=[])
    assert dynamodb_manager.load_all() == travelers


def test_load_all_restores_feed_order(dynamodb_manager, make_record):
    """Test that records come back in the order they were stored."""
    records = [make_record(name=name) for name in ('Zed', 'Asha', 'Mia', 'Ben')]

    dynamodb_manager.replace_all(records)

    assert [r.name for r in dynamodb_manager.load_all()] == ['Zed', 'Asha', 'Mia', 'Ben']


def test_replace_all_no_changes(dynamodb_manager, travelers):
    """Test replace_all when nothing changed."""
    dynamodb_manager.replace_all(travelers)

    result = dynamodb_manager.replace_all(travelers)

    assert result.added == 0
    assert result.updated == 0
    assert result.deleted == 0


def test_replace_all_mixed_operations(dynamodb_manager, make_record):
    """Test replace_all with add, update, and delete operations."""
    asha = make_record(name='Asha', departure_time='10:00')
    ben = make_record(name='Ben')
    dynamodb_manager.replace_all([asha, ben])

    asha_updated = make_record(name='Asha', departure_time='11:15')
    chitra = make_record(name='Chitra')

    result = dynamodb_manager.replace_all([asha_updated, chitra])

    assert result.added == 1
    assert result.updated == 1
    assert result.deleted == 1

    stored = dynamodb_manager.load_all()
    assert stored == [asha_updated, chitra]
    assert stored[0].departure_time == '11:15'


def test_replace_all_with_empty_set(dynamodb_manager, travelers):
    dynamodb_manager.replace_all(travelers)

    result = dynamodb_manager.replace_all([])

    assert result.deleted == 30
    assert dynamodb_manager.load_all() == []


def test_replace_all_keeps_first_of_repeated_ids(dynamodb_manager, make_record):
    first = make_record(departure_time='10:00')
    repeat = make_record(departure_time='12:00')

    result = dynamodb_manager.replace_all([first, repeat])

    assert result.added == 1
    assert dynamodb_manager.load_all() == [first]


def test_empty_optional_fields_round_trip(dynamodb_manager):
    record = TravelRecord.create(name='Asha', travel_date='2024-01-15', place='Airport')

    dynamodb_manager.replace_all([record])

    assert dynamodb_manager.load_all() == [record]


def test_malformed_items_are_skipped(dynamodb_manager, dynamodb_table, make_record):
    dynamodb_manager.replace_all([make_record()])
    dynamodb_table.put_item(Item={'record_id': 'broken', 'name': 'No position'})

    assert len(dynamodb_manager.load_all()) == 1


def test_batch_write_records_empty(dynamodb_manager):
    assert dynamodb_manager.batch_write_records([]) == 0


def test_batch_delete_records_empty(dynamodb_manager):
    assert dynamodb_manager.batch_delete_records([]) == 0


def test_replace_all_reports_missing_table(aws_env, make_record):
    """Test that a failing table is reported, not raised."""
    with mock_aws():
        manager = DynamoDBManager('missing-table')

        result = manager.replace_all([make_record()])

    assert result.added == 0
    assert len(result.errors) == 1
    assert 'Error during sync operation' in result.errors[0]


def test_replace_all_reports_connection_failure(dynamodb_manager, make_record):
    """Test that a botocore connection error is reported, not raised."""
    dynamodb_manager.table = Mock()
    dynamodb_manager.table.scan.side_effect = EndpointConnectionError(
        endpoint_url='https://dynamodb.us-east-1.amazonaws.com'
    )

    result = dynamodb_manager.replace_all([make_record()])

    assert result.added == 0
    assert len(result.errors) == 1
    assert 'Could not connect to the endpoint URL' in result.errors[0]
