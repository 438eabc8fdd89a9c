"""
Object storage behind a narrow async interface.

boto3 is blocking, so every call is pushed to the default executor.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from ..config import settings
from ..logger import logger


class ObjectExistsError(Exception):
    """Refused to overwrite an existing object."""


class ObjectStore(Protocol):
    async def exists(self, bucket: str, key: str) -> bool: ...

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None: ...

    async def get(self, bucket: str, key: str) -> bytes: ...

    async def sign_get(self, bucket: str, key: str, expires_in: int) -> str: ...

    async def sign_put(self, bucket: str, key: str, content_type: str, content_length: int, expires_in: int) -> str: ...


def make_s3_client():
    return boto3.client(
        "s3",
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION_NAME,
        endpoint_url=settings.AWS_ENDPOINT_URL,
    )


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")


class S3ObjectStore:
    def __init__(self, s3_client, cache_control: str = "3600"):
        self.s3 = s3_client
        self.cache_control = cache_control

    async def _run(self, fn):
        return await asyncio.get_running_loop().run_in_executor(None, fn)

    async def exists(self, bucket: str, key: str) -> bool:
        try:
            await self._run(lambda: self.s3.head_object(Bucket=bucket, Key=key))
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        if await self.exists(bucket, key):
            raise ObjectExistsError(f"Object already exists: s3://{bucket}/{key}")

        await self._run(lambda: self.s3.put_object(
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            CacheControl=self.cache_control,
        ))
        logger.info(f"Uploaded object to S3: {key}", extra={"bucket": bucket, "size_bytes": len(data)})

    async def get(self, bucket: str, key: str) -> bytes:
        obj = await self._run(lambda: self.s3.get_object(Bucket=bucket, Key=key))
        return obj["Body"].read()

    async def sign_get(self, bucket: str, key: str, expires_in: int) -> str:
        return await self._run(lambda: self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_in,
        ))

    async def sign_put(self, bucket: str, key: str, content_type: str, content_length: int, expires_in: int) -> str:
        return await self._run(lambda: self.s3.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": bucket,
                "Key": key,
                "ContentType": content_type,
                "ContentLength": content_length,
            },
            ExpiresIn=expires_in,
        ))


_store: Optional[S3ObjectStore] = None


def get_object_store() -> S3ObjectStore:
    global _store
    if _store is None:
        _store = S3ObjectStore(make_s3_client())
    return _store
