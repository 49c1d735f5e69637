"""Tests for the DynamoDB backend against a stubbed botocore client."""

import boto3
import pytest
from botocore.stub import Stubber

from onetime.config import Settings
from onetime.errors import (
    AlreadyClaimed,
    FileAlreadyExists,
    FileNotFound,
    LinkNotFound,
    StorageError,
    TokenCollision,
)
from onetime.storage.dynamodb import DynamoStorage

FILES = "Test.Files"
LINKS = "Test.Links"


def _file_item(filename="report.pdf", contents=b"PDF-BYTES", now=1000):
    return {
        "Filename": {"S": filename},
        "Contents": {"B": contents},
        "Size": {"N": str(len(contents))},
        "CreatedAt": {"N": str(now)},
        "UpdatedAt": {"N": str(now)},
    }


def _link_item(token="tok-1", filename="report.pdf", downloaded_at=None, ip=None):
    item = {
        "Token": {"S": token},
        "Filename": {"S": filename},
        "CreatedAt": {"N": "1000"},
    }
    if downloaded_at is not None:
        item["DownloadedAt"] = {"N": str(downloaded_at)}
    if ip is not None:
        item["IpAddress"] = {"S": ip}
    return item


def _claim_params(token="tok-1", now=5000, ip="10.0.0.1"):
    return {
        "TableName": LINKS,
        "Key": {"Token": {"S": token}},
        "UpdateExpression": "SET DownloadedAt = :now, IpAddress = :ip",
        "ConditionExpression": "attribute_exists(#token) AND attribute_not_exists(DownloadedAt)",
        "ExpressionAttributeNames": {"#token": "Token"},
        "ExpressionAttributeValues": {":now": {"N": str(now)}, ":ip": {"S": ip}},
        "ReturnValues": "ALL_NEW",
        "ReturnValuesOnConditionCheckFailure": "ALL_OLD",
    }


@pytest.fixture
def client():
    return boto3.client(
        "dynamodb",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(client):
    with Stubber(client) as s:
        yield s
        s.assert_no_pending_responses()


@pytest.fixture
def storage(client):
    return DynamoStorage(client, FILES, LINKS)


@pytest.mark.asyncio
async def test_put_file_is_conditional(storage, stubber):
    """put_file writes only if the filename does not exist yet."""
    stubber.add_response(
        "put_item",
        {},
        {
            "TableName": FILES,
            "Item": _file_item(),
            "ConditionExpression": "attribute_not_exists(Filename)",
        },
    )
    await storage.put_file("report.pdf", b"PDF-BYTES", 1000)


@pytest.mark.asyncio
async def test_put_file_duplicate(storage, stubber):
    stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
    with pytest.raises(FileAlreadyExists):
        await storage.put_file("report.pdf", b"other", 2000)


@pytest.mark.asyncio
async def test_get_file(storage, stubber):
    stubber.add_response("get_item", {"Item": _file_item()})
    f = await storage.get_file("report.pdf")
    assert f.contents == b"PDF-BYTES"
    assert f.created_at == 1000


@pytest.mark.asyncio
async def test_get_file_missing(storage, stubber):
    stubber.add_response("get_item", {})
    with pytest.raises(FileNotFound):
        await storage.get_file("nope.pdf")


@pytest.mark.asyncio
async def test_list_files_uses_projection(storage, stubber):
    """Scan projects metadata only; Size comes from the stored attribute."""
    item = _file_item()
    del item["Contents"]
    stubber.add_response(
        "scan",
        {"Items": [item], "Count": 1, "ScannedCount": 1},
        {
            "TableName": FILES,
            "ProjectionExpression": "Filename, #size, CreatedAt, UpdatedAt",
            "ExpressionAttributeNames": {"#size": "Size"},
        },
    )
    files = await storage.list_files()
    assert len(files) == 1
    assert files[0].filename == "report.pdf"
    assert files[0].size == len(b"PDF-BYTES")


@pytest.mark.asyncio
async def test_put_link_missing_file(storage, stubber):
    """No link is written when the file does not exist."""
    stubber.add_response("get_item", {})
    with pytest.raises(FileNotFound):
        await storage.put_link("tok-1", "missing.txt", 1000)


@pytest.mark.asyncio
async def test_put_link(storage, stubber):
    stubber.add_response("get_item", {"Item": {"Filename": {"S": "report.pdf"}}})
    stubber.add_response(
        "put_item",
        {},
        {
            "TableName": LINKS,
            "Item": {
                "Token": {"S": "tok-1"},
                "Filename": {"S": "report.pdf"},
                "CreatedAt": {"N": "1000"},
            },
            "ConditionExpression": "attribute_not_exists(#token)",
            "ExpressionAttributeNames": {"#token": "Token"},
        },
    )
    link = await storage.put_link("tok-1", "report.pdf", 1000)
    assert link.token == "tok-1"
    assert link.downloaded_at is None


@pytest.mark.asyncio
async def test_put_link_token_collision(storage, stubber):
    stubber.add_response("get_item", {"Item": {"Filename": {"S": "report.pdf"}}})
    stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
    with pytest.raises(TokenCollision):
        await storage.put_link("tok-1", "report.pdf", 1000)


@pytest.mark.asyncio
async def test_claim_link_wins(storage, stubber):
    """A successful conditional update is followed by the file read."""
    stubber.add_response(
        "update_item",
        {"Attributes": _link_item(downloaded_at=5000, ip="10.0.0.1")},
        _claim_params(),
    )
    stubber.add_response("get_item", {"Item": _file_item()})
    f = await storage.claim_link("tok-1", 5000, "10.0.0.1")
    assert f.filename == "report.pdf"
    assert f.contents == b"PDF-BYTES"


@pytest.mark.asyncio
async def test_claim_link_already_claimed_from_old_item(storage, stubber):
    """Condition failure carrying the old item is AlreadyClaimed without another read."""
    stubber.add_client_error(
        "update_item",
        service_error_code="ConditionalCheckFailedException",
        modeled_fields={"Item": _link_item(downloaded_at=4000, ip="10.0.0.9")},
    )
    with pytest.raises(AlreadyClaimed):
        await storage.claim_link("tok-1", 5000, "10.0.0.1")


@pytest.mark.asyncio
async def test_claim_link_already_claimed_after_read(storage, stubber):
    stubber.add_client_error("update_item", service_error_code="ConditionalCheckFailedException")
    stubber.add_response("get_item", {"Item": _link_item(downloaded_at=4000)})
    with pytest.raises(AlreadyClaimed):
        await storage.claim_link("tok-1", 5000, "10.0.0.1")


@pytest.mark.asyncio
async def test_claim_link_unknown_token(storage, stubber):
    stubber.add_client_error("update_item", service_error_code="ConditionalCheckFailedException")
    stubber.add_response("get_item", {})
    with pytest.raises(LinkNotFound):
        await storage.claim_link("never-issued", 5000, "10.0.0.1")


@pytest.mark.asyncio
async def test_claim_link_service_error(storage, stubber):
    """Other service errors are StorageError, never AlreadyClaimed."""
    stubber.add_client_error(
        "update_item",
        service_error_code="ProvisionedThroughputExceededException",
        http_status_code=400,
    )
    with pytest.raises(StorageError):
        await storage.claim_link("tok-1", 5000, "10.0.0.1")


@pytest.mark.asyncio
async def test_get_link_claimed(storage, stubber):
    stubber.add_response("get_item", {"Item": _link_item(downloaded_at=4000, ip="10.0.0.9")})
    link = await storage.get_link("tok-1")
    assert link.claimed
    assert link.ip_address == "10.0.0.9"


@pytest.mark.asyncio
async def test_get_link_malformed_item(storage, stubber):
    stubber.add_response("get_item", {"Item": {"Token": {"S": "tok-1"}}})
    with pytest.raises(StorageError, match="Filename"):
        await storage.get_link("tok-1")


@pytest.mark.asyncio
async def test_list_links_for_file_filters(storage, stubber):
    stubber.add_response(
        "scan",
        {"Items": [_link_item("t2"), _link_item("t1")], "Count": 2, "ScannedCount": 5},
        {
            "TableName": LINKS,
            "FilterExpression": "Filename = :filename",
            "ExpressionAttributeValues": {":filename": {"S": "report.pdf"}},
        },
    )
    links = await storage.list_links_for_file("report.pdf")
    assert [link.token for link in links] == ["t1", "t2"]


def test_from_settings():
    """Table names and endpoint come from settings."""
    settings = Settings(
        provider="dynamodb",
        dynamodb_files_table="F",
        dynamodb_links_table="L",
        dynamodb_endpoint_url="http://localhost:8000",
    )
    storage = DynamoStorage.from_settings(settings)
    assert storage.files_table == "F"
    assert storage.links_table == "L"
    assert storage._client.meta.endpoint_url == "http://localhost:8000"
