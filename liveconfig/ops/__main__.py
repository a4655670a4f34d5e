"""
Run the admin HTTP surface:

    python -m liveconfig.ops
"""

from __future__ import annotations

import uvicorn

from liveconfig.bootstrap import build_context
from liveconfig.common.config import get_settings
from liveconfig.common.logging import init_structured_logging
from liveconfig.ops.app import create_app


def main() -> None:
    settings = get_settings()
    init_structured_logging(service=settings.SERVICE_NAME, level=settings.LOG_LEVEL)
    app = create_app(build_context(settings))
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
