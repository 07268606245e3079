"""
Deploy package.

Delta generation, the concurrent uploader and its cancellation token.
"""

from case_deploy.deploy.cancel import CancelToken
from case_deploy.deploy.delta import ConfigLine, check_item_count, generate_config_lines
from case_deploy.deploy.uploader import (
    ConcurrentUploader,
    ItemError,
    RetryPolicy,
    UploaderConfig,
    UploadResult,
)

__all__ = [
    "CancelToken",
    "ConfigLine",
    "check_item_count",
    "generate_config_lines",
    "ConcurrentUploader",
    "ItemError",
    "RetryPolicy",
    "UploaderConfig",
    "UploadResult",
]
