"""
title: Echo Pipeline
description: Returns the input data unchanged
type: pipe

Useful for testing and debugging: the whole request body comes back
under "echo".
"""

import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def pipe(body, user=None):
    logger.info("Echo pipeline executing")
    return {
        "echo": body,
        "user": user,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pipeline": "echo_pipeline",
        "message": "This is an echo of your input",
    }
