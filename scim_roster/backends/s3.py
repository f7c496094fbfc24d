"""Object-store backend: two JSON objects in an S3 bucket."""

from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import TransientIOError
from ..roster import Kind
from .base import PersistenceBackend

# Error codes S3 uses for a key that does not exist.  GetObject reports
# NoSuchKey; a HEAD-style 404 comes back as "404"/"NotFound".
_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3Backend(PersistenceBackend):
    """Stores snapshots as ``<prefix><user_obj>`` / ``<prefix><group_obj>`` in ``bucket``.

    Args:
        bucket:     Bucket name.
        prefix:     Key prefix, concatenated verbatim.
        user_obj:   User snapshot object name.
        group_obj:  Group snapshot object name.
        client:     A boto3 S3 client; one is created from the default
                    credential chain when omitted.
    """

    name = "s3"

    def __init__(self, bucket: str, prefix: str, user_obj: str, group_obj: str,
                 client=None, logger=None):
        super().__init__(user_obj, group_obj, logger=logger)
        self.bucket = bucket
        self.prefix = prefix
        self.client = client if client is not None else boto3.client("s3")

    def key(self, kind: Kind) -> str:
        return f"{self.prefix}{self.objects[kind]}"

    def location(self, kind: Kind) -> str:
        return f"s3://{self.bucket}/{self.key(kind)}"

    def _read(self, kind: Kind) -> Optional[bytes]:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=self.key(kind))
            body = resp["Body"]
            try:
                return body.read()
            finally:
                body.close()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                return None
            raise TransientIOError(f"Error fetching {kind.label} from S3: {code or exc}",
                                   roster_kind=kind, location=self.location(kind)) from exc
        except BotoCoreError as exc:
            raise TransientIOError(f"Error fetching {kind.label} from S3: {exc}",
                                   roster_kind=kind, location=self.location(kind)) from exc

    def _write(self, kind: Kind, data: bytes) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self.key(kind),
                Body=data,
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:
            raise TransientIOError(f"Failed to PUT {kind.label} in S3: {exc}",
                                   roster_kind=kind, location=self.location(kind)) from exc
