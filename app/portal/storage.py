from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from itsdangerous import BadSignature, URLSafeTimedSerializer

_SIGNED_URL_SALT = "portal.storage.signed-url"


class StorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def signed_url(self, key: str, *, expires_in: int) -> str:
        """Time-limited read URL for `key`."""
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    secret_key: str = ""

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        if ".." in safe_key.split("/"):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / safe_key

    def _serializer(self) -> URLSafeTimedSerializer:
        if not self.secret_key:
            raise StorageError("SECRET_KEY is required to sign storage URLs.")
        return URLSafeTimedSerializer(self.secret_key, salt=_SIGNED_URL_SALT)

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        if not p.exists():
            raise StorageError(f"Object not found: {key}")
        return p.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        p = self._path(key)
        if p.exists():
            p.unlink()

    def sign_key(self, key: str, *, expires_in: int) -> str:
        return self._serializer().dumps({"k": key, "ttl": int(expires_in)})

    def unsign_key(self, token: str) -> str:
        """Return the key a token grants, or raise StorageError if forged or expired."""
        try:
            payload, signed_at = self._serializer().loads(token, return_timestamp=True)
        except BadSignature as e:
            raise StorageError("Invalid signed URL.") from e
        age = time.time() - signed_at.timestamp()
        if age > int(payload.get("ttl", 0)):
            raise StorageError("Signed URL has expired.")
        return str(payload["k"])

    def signed_url(self, key: str, *, expires_in: int) -> str:
        from flask import url_for

        return url_for("routes.storage_object", token=self.sign_key(key, expires_in=expires_in))


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    @contextmanager
    def _wrap_errors(self, op: str, key: str):
        """Re-raise botocore failures as StorageError carrying the backend message."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            yield
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 {op} failed for {key}: {e}") from e

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        with self._wrap_errors("put", key):
            self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)

    def open(self, key: str) -> BinaryIO:
        with self._wrap_errors("get", key):
            obj = self._client().get_object(Bucket=self.bucket, Key=key)
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def delete(self, key: str) -> None:
        with self._wrap_errors("delete", key):
            self._client().delete_object(Bucket=self.bucket, Key=key)

    def signed_url(self, key: str, *, expires_in: int) -> str:
        with self._wrap_errors("sign", key):
            return self._client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(expires_in),
            )


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    root = Path(config.get("STORAGE_ROOT") or (Path(os.getcwd()) / "storage"))
    return LocalStorage(root=root, secret_key=str(config.get("SECRET_KEY") or ""))
