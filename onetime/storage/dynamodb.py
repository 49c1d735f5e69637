"""Key-value backend: DynamoDB via boto3, using conditional writes for every mutation."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from onetime.config import Settings
from onetime.errors import (
    AlreadyClaimed,
    FileAlreadyExists,
    FileNotFound,
    LinkNotFound,
    StorageError,
    TokenCollision,
)
from onetime.storage.base import File, FileInfo, Link, StorageProvider

log = logging.getLogger(__name__)

Item = Dict[str, Dict[str, Any]]

FIELD_FILENAME = "Filename"
FIELD_CONTENTS = "Contents"
FIELD_SIZE = "Size"
FIELD_CREATED_AT = "CreatedAt"
FIELD_UPDATED_AT = "UpdatedAt"

FIELD_TOKEN = "Token"
FIELD_DOWNLOADED_AT = "DownloadedAt"
FIELD_IP_ADDRESS = "IpAddress"
# Token and Size are DynamoDB reserved words: expressions use #token and #size

_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class _ConditionFailed(Exception):
    """A ConditionExpression did not hold. Carries the error response."""

    def __init__(self, response: Dict[str, Any]) -> None:
        super().__init__(_CONDITIONAL_CHECK_FAILED)
        self.response = response


def _s(val: str) -> Dict[str, str]:
    return {"S": val}


def _n(val: int) -> Dict[str, str]:
    return {"N": str(val)}


def _attr_s(item: Item, field: str) -> str:
    try:
        return item[field]["S"]
    except KeyError as e:
        raise StorageError(f"Missing or malformed field {field}") from e


def _attr_os(item: Item, field: str) -> Optional[str]:
    if field not in item:
        return None
    return _attr_s(item, field)


def _attr_n(item: Item, field: str) -> int:
    try:
        return int(item[field]["N"])
    except (KeyError, ValueError) as e:
        raise StorageError(f"Missing or malformed field {field}") from e


def _attr_on(item: Item, field: str) -> Optional[int]:
    if field not in item:
        return None
    return _attr_n(item, field)


def _attr_b(item: Item, field: str) -> bytes:
    try:
        return bytes(item[field]["B"])
    except (KeyError, TypeError) as e:
        raise StorageError(f"Missing or malformed field {field}") from e


def _build_file(item: Item) -> File:
    return File(
        filename=_attr_s(item, FIELD_FILENAME),
        contents=_attr_b(item, FIELD_CONTENTS),
        created_at=_attr_n(item, FIELD_CREATED_AT),
        updated_at=_attr_n(item, FIELD_UPDATED_AT),
    )


def _build_file_info(item: Item) -> FileInfo:
    return FileInfo(
        filename=_attr_s(item, FIELD_FILENAME),
        size=_attr_n(item, FIELD_SIZE),
        created_at=_attr_n(item, FIELD_CREATED_AT),
        updated_at=_attr_n(item, FIELD_UPDATED_AT),
    )


def _build_link(item: Item) -> Link:
    return Link(
        token=_attr_s(item, FIELD_TOKEN),
        filename=_attr_s(item, FIELD_FILENAME),
        created_at=_attr_n(item, FIELD_CREATED_AT),
        downloaded_at=_attr_on(item, FIELD_DOWNLOADED_AT),
        ip_address=_attr_os(item, FIELD_IP_ADDRESS),
    )


def _sorted_links(links: List[Link]) -> List[Link]:
    return sorted(links, key=lambda link: (link.created_at, link.token))


class DynamoStorage(StorageProvider):
    """
    Storage on DynamoDB. Two tables keyed by Filename and Token. The claim is a single
    UpdateItem conditioned on attribute_not_exists(DownloadedAt), so DynamoDB's per-item
    conditional write decides the single winner; there is no read-then-write.

    The boto3 client is synchronous; each call runs in a worker thread.
    """

    name = "dynamodb"

    def __init__(self, client: Any, files_table: str, links_table: str) -> None:
        self._client = client
        self.files_table = files_table
        self.links_table = links_table

    @classmethod
    def from_settings(cls, settings: Settings) -> "DynamoStorage":
        timeout = settings.storage_timeout_seconds
        # No transport retries: a retried claim that already committed would read as AlreadyClaimed
        config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"total_max_attempts": 1},
        )
        kwargs: Dict[str, Any] = {"region_name": settings.aws_region, "config": config}
        if settings.dynamodb_endpoint_url:
            kwargs["endpoint_url"] = settings.dynamodb_endpoint_url
        client = boto3.client("dynamodb", **kwargs)
        return cls(client, settings.dynamodb_files_table, settings.dynamodb_links_table)

    async def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        """Run one client call off the event loop; map botocore errors to StorageError."""
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code == _CONDITIONAL_CHECK_FAILED:
                raise _ConditionFailed(e.response) from e
            log.error("DynamoDB %s failed: %s", operation, e)
            raise StorageError(f"{operation} failed: {e}") from e
        except BotoCoreError as e:
            log.error("DynamoDB %s failed: %s", operation, e)
            raise StorageError(f"{operation} failed: {e}") from e

    async def _scan(self, table: str, **kwargs: Any) -> List[Item]:
        """Scan all pages of a table."""

        def run() -> List[Item]:
            items: List[Item] = []
            paginator = self._client.get_paginator("scan")
            for page in paginator.paginate(TableName=table, **kwargs):
                items.extend(page.get("Items", []))
            return items

        try:
            return await asyncio.to_thread(run)
        except (ClientError, BotoCoreError) as e:
            log.error("DynamoDB scan of %s failed: %s", table, e)
            raise StorageError(f"scan {table} failed: {e}") from e

    async def _get_item(self, table: str, key: Item, **kwargs: Any) -> Optional[Item]:
        output = await self._call(
            "get_item", TableName=table, Key=key, ConsistentRead=True, **kwargs
        )
        return output.get("Item")

    async def put_file(self, filename: str, contents: bytes, now: int) -> None:
        item = {
            FIELD_FILENAME: _s(filename),
            FIELD_CONTENTS: {"B": contents},
            FIELD_SIZE: _n(len(contents)),
            FIELD_CREATED_AT: _n(now),
            FIELD_UPDATED_AT: _n(now),
        }
        try:
            await self._call(
                "put_item",
                TableName=self.files_table,
                Item=item,
                ConditionExpression=f"attribute_not_exists({FIELD_FILENAME})",
            )
        except _ConditionFailed as e:
            raise FileAlreadyExists(filename) from e

    async def get_file(self, filename: str) -> File:
        item = await self._get_item(self.files_table, {FIELD_FILENAME: _s(filename)})
        if item is None:
            raise FileNotFound(filename)
        return _build_file(item)

    async def list_files(self) -> List[FileInfo]:
        items = await self._scan(
            self.files_table,
            ProjectionExpression=", ".join(
                [FIELD_FILENAME, "#size", FIELD_CREATED_AT, FIELD_UPDATED_AT]
            ),
            ExpressionAttributeNames={"#size": FIELD_SIZE},
        )
        files = [_build_file_info(item) for item in items]
        return sorted(files, key=lambda f: (f.created_at, f.filename))

    async def put_link(self, token: str, filename: str, now: int) -> Link:
        exists = await self._get_item(
            self.files_table,
            {FIELD_FILENAME: _s(filename)},
            ProjectionExpression=FIELD_FILENAME,
        )
        if exists is None:
            raise FileNotFound(filename)
        item = {
            FIELD_TOKEN: _s(token),
            FIELD_FILENAME: _s(filename),
            FIELD_CREATED_AT: _n(now),
        }
        try:
            await self._call(
                "put_item",
                TableName=self.links_table,
                Item=item,
                ConditionExpression="attribute_not_exists(#token)",
                ExpressionAttributeNames={"#token": FIELD_TOKEN},
            )
        except _ConditionFailed as e:
            raise TokenCollision(token) from e
        return Link(token=token, filename=filename, created_at=now)

    async def get_link(self, token: str) -> Link:
        item = await self._get_item(self.links_table, {FIELD_TOKEN: _s(token)})
        if item is None:
            raise LinkNotFound(token)
        return _build_link(item)

    async def list_links(self) -> List[Link]:
        items = await self._scan(self.links_table)
        return _sorted_links([_build_link(item) for item in items])

    async def list_links_for_file(self, filename: str) -> List[Link]:
        items = await self._scan(
            self.links_table,
            FilterExpression=f"{FIELD_FILENAME} = :filename",
            ExpressionAttributeValues={":filename": _s(filename)},
        )
        return _sorted_links([_build_link(item) for item in items])

    async def claim_link(self, token: str, now: int, ip_address: Optional[str]) -> File:
        values: Item = {":now": _n(now)}
        update_expression = f"SET {FIELD_DOWNLOADED_AT} = :now"
        if ip_address is not None:
            values[":ip"] = _s(ip_address)
            update_expression += f", {FIELD_IP_ADDRESS} = :ip"
        try:
            output = await self._call(
                "update_item",
                TableName=self.links_table,
                Key={FIELD_TOKEN: _s(token)},
                UpdateExpression=update_expression,
                ConditionExpression=(
                    f"attribute_exists(#token) AND attribute_not_exists({FIELD_DOWNLOADED_AT})"
                ),
                ExpressionAttributeNames={"#token": FIELD_TOKEN},
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
                ReturnValuesOnConditionCheckFailure="ALL_OLD",
            )
        except _ConditionFailed as e:
            old = e.response.get("Item")
            if old is None:
                # Older endpoints omit the old item; a read only classifies the failure
                old = await self._get_item(self.links_table, {FIELD_TOKEN: _s(token)})
            if old is None:
                raise LinkNotFound(token) from e
            raise AlreadyClaimed(token) from e

        link = _build_link(output.get("Attributes", {}))
        item = await self._get_item(self.files_table, {FIELD_FILENAME: _s(link.filename)})
        if item is None:
            log.error("Link %s... claimed but file %s is missing", token[:8], link.filename)
            raise FileNotFound(link.filename)
        return _build_file(item)
