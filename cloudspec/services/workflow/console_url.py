"""
Step Functions console links for operator debugging. Advisory only.
"""

import logging
import time
from typing import Optional
from urllib.parse import urlencode

from cloudspec.common.constants import CONSOLE_HOST_TEMPLATE

logger = logging.getLogger(__name__)

UNAVAILABLE = "Unable to generate Step Functions console URL"


def get_console_url(execution_arn: str, start_date_ms: Optional[int] = None) -> str:
    """
    Console URL for an execution ARN.

    arn:aws:states:<region>:<account>:execution:<machine>:<name>  -> standard view
    arn:aws:states:<region>:<account>:express:<machine>:<name>:<id> -> express view
    """
    parts = (execution_arn or "").split(":")
    if len(parts) < 7 or parts[0] != "arn" or parts[2] != "states" or not parts[3]:
        logger.error("Error parsing execution ARN: %s", execution_arn)
        return UNAVAILABLE

    region, execution_type = parts[3], parts[5]
    base_url = f"{CONSOLE_HOST_TEMPLATE.format(region=region)}?{urlencode({'region': region})}"

    if execution_type == "express":
        start_date = start_date_ms if start_date_ms is not None else int(time.time() * 1000)
        return f"{base_url}#/express-executions/details/{execution_arn}?startDate={start_date}"
    return f"{base_url}#/v2/executions/details/{execution_arn}"
