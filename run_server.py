"""Run the testbench web server.

Usage:
    python run_server.py
    python run_server.py --port 8080
"""

import argparse
import uvicorn

from testbench.config import get_config
from testbench.core.logging import setup_logging


def main():
    parser = argparse.ArgumentParser(description="testbench API server")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    config = get_config()
    setup_logging(
        level=config.log.level,
        format_type=config.log.format,
        log_dir=config.paths.logs_dir,
        file_enabled=config.log.file_enabled,
        console_enabled=config.log.console_enabled,
    )

    host = args.host or config.web.host
    port = args.port or config.web.port

    print(f"🚀 Starting testbench API at http://{host}:{port}")
    print(f"   Press Ctrl+C to stop")

    uvicorn.run(
        "testbench.web.server:app",
        host=host,
        port=port,
        reload=args.reload or config.web.debug,
        log_level="info"
    )


if __name__ == "__main__":
    main()
