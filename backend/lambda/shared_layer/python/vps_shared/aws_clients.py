"""vps_shared.aws_clients — Lazy-singleton AWS service clients.

The S3 client is only built when the S3 record store is actually used, so
the default file-backed deployment never pays for boto3 client construction.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from vps_shared import config

_s3 = None


def _get_s3(region: Optional[str] = None):
    """Get (or create) the S3 client singleton."""
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or config.S3_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _s3
