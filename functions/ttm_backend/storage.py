"""
Object storage for uploaded media and generated documents.

Objects live in one bucket under per-owner prefixes:

    herbs/{herb_id}/...        product images
    reviews/{review_id}/...    review photos and videos
    certificates/...           course certificate PDFs
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4

import boto3
from botocore.config import Config

DEFAULT_URL_TTL_SECONDS = 3600

_UNSAFE_KEY_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def media_key(prefix: str, owner_id: str, filename: str) -> str:
    """Builds a unique object key for an uploaded file."""
    safe_name = _UNSAFE_KEY_CHARS_RE.sub("_", filename or "upload").strip("_") or "upload"
    return f"{prefix}/{owner_id}/{int(time.time())}-{uuid4().hex[:8]}-{safe_name}"


class StorageClient(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def read(self, key: str) -> bytes:
        ...

    def url_for(self, key: str, expires_in: int = DEFAULT_URL_TTL_SECONDS) -> str:
        ...

    def upload_url_for(
        self, key: str, content_type: str, expires_in: int = DEFAULT_URL_TTL_SECONDS
    ) -> str:
        ...

    def delete_prefix(self, prefix: str) -> int:
        ...


@dataclass
class InMemoryStorageClient:
    """Keeps objects in a dict; URLs are fake but stable."""

    base_url: str = "https://storage.local"
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = (bytes(data), content_type)

    def read(self, key: str) -> bytes:
        if key not in self.objects:
            raise FileNotFoundError(key)
        return self.objects[key][0]

    def url_for(self, key: str, expires_in: int = DEFAULT_URL_TTL_SECONDS) -> str:
        return f"{self.base_url}/{key}?expires={expires_in}"

    def upload_url_for(
        self, key: str, content_type: str, expires_in: int = DEFAULT_URL_TTL_SECONDS
    ) -> str:
        return f"{self.base_url}/{key}?upload=1&content_type={content_type}&expires={expires_in}"

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self.objects if key.startswith(prefix)]
        for key in doomed:
            del self.objects[key]
        return len(doomed)


@dataclass
class S3StorageClient:
    """
    S3-compatible bucket (AWS, R2, MinIO, Supabase storage gateway).

    URLs handed to clients are presigned; the bucket itself stays private.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        # Path-style keeps presigned URLs valid on gateways without virtual hosts.
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(s3={"addressing_style": "path"}, signature_version="s3v4"),
        )

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def read(self, key: str) -> bytes:
        return self._client.get_object(Bucket=self.bucket, Key=key)["Body"].read()

    def url_for(self, key: str, expires_in: int = DEFAULT_URL_TTL_SECONDS) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def upload_url_for(
        self, key: str, content_type: str, expires_in: int = DEFAULT_URL_TTL_SECONDS
    ) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if not keys:
                continue
            # delete_objects accepts at most 1000 keys, which is also the page size.
            self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": keys})
            deleted += len(keys)
        return deleted
