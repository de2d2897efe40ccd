from __future__ import annotations

import pytest

from app.clients import dynamodb as dynamodb_module
from app.core.config import StorageSettings
from app.models.oauth import OAuthCredentials
from app.services import OAuthCredentialStore


class FakeTable:
    """Mimics the subset of the boto3 Table API used by DynamoDBClient."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict] = {}
        self.scan_pages = 0

    def put_item(self, Item: dict) -> None:
        self.items[(Item["pk"], Item["sk"])] = dict(Item)

    def get_item(self, Key: dict) -> dict:
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": item} if item else {}

    def delete_item(self, Key: dict) -> None:
        self.items.pop((Key["pk"], Key["sk"]), None)

    def scan(self, FilterExpression, ExclusiveStartKey=None) -> dict:
        self.scan_pages += 1
        prefix = FilterExpression.get_expression()["values"][1]
        matches = [item for (pk, _), item in self.items.items() if pk.startswith(prefix)]
        if ExclusiveStartKey is None and len(matches) > 1:
            return {"Items": matches[:1], "LastEvaluatedKey": {"page": 1}}
        return {"Items": matches[1:] if ExclusiveStartKey else matches}


class FakeResource:
    def __init__(self, table: FakeTable) -> None:
        self.table = table
        self.table_names: list[str] = []

    def Table(self, name: str) -> FakeTable:
        self.table_names.append(name)
        return self.table


@pytest.fixture()
def table(monkeypatch: pytest.MonkeyPatch) -> FakeTable:
    fake_table = FakeTable()
    resource = FakeResource(fake_table)
    monkeypatch.setattr(
        dynamodb_module.boto3, "resource", lambda service, region_name: resource
    )
    return fake_table


def _settings() -> StorageSettings:
    return StorageSettings(backend="dynamodb", dynamodb_table_name="oauth-table")


def test_requires_table_name() -> None:
    with pytest.raises(ValueError):
        dynamodb_module.DynamoDBClient(StorageSettings(dynamodb_table_name=None))


def test_credentials_round_trip_through_dynamodb(table: FakeTable) -> None:
    store = OAuthCredentialStore(dynamodb_module.DynamoDBClient(_settings()))
    record = OAuthCredentials(
        access_token="access", expiry_date=1_700_000_000_000, email="a@b.com"
    )

    store.save_credentials("u1", record)

    assert ("user#u1", "oauth-credentials") in table.items
    assert store.get_credentials("u1") == record
    store.delete_credentials("u1")
    assert store.get_credentials("u1") is None


def test_scan_follows_pagination(table: FakeTable) -> None:
    clock_ms = [1_700_000_000_000]
    store = OAuthCredentialStore(
        dynamodb_module.DynamoDBClient(_settings()), clock=lambda: clock_ms[0]
    )
    store.save_state("s1", "u1")
    store.save_state("s2", "u2")
    clock_ms[0] += 16 * 60 * 1000

    assert store.cleanup_expired_states() == 2
    assert table.scan_pages == 2
    assert table.items == {}
