#!/usr/bin/env python3
"""
Simple runner script for the Flask application.
This script ensures the correct Python path is set and runs the app.
"""

import sys
from pathlib import Path

# Add the current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

from config_manager import ConfigManager
from fetch_backend.logging_config import attach_session_context, setup_logging, stop_logging
from fetch_app.main import create_app


def main() -> None:
    config_manager = ConfigManager()
    app_config = config_manager.get_app_config()
    setup_logging(debug=app_config.debug)

    app = create_app(config_manager)
    state = app.extensions["fetch_session"]["state"]
    attach_session_context(lambda: state.session_id)
    print("🚀 Starting fetch session service...")
    print(f"📁 Working directory: {current_dir}")
    try:
        # The reloader would start a second progress listener
        app.run(
            host=app_config.host,
            port=app_config.port,
            debug=app_config.debug,
            use_reloader=False,
            threaded=True
        )
    finally:
        app.extensions["fetch_session"]["listener"].stop()
        stop_logging()


if __name__ == "__main__":
    main()
