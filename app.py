#!/usr/bin/env python3
"""
Leasy API - development and gunicorn entry point
"""
import os
import sys
from pathlib import Path

# Get the src directory
ROOT_DIR = Path(__file__).parent
SRC_DIR = ROOT_DIR / 'src'

# Add src directory to path so the runner works without an install
sys.path.insert(0, str(SRC_DIR))

from leasy.app import create_app
from leasy.config import settings

app = create_app()


if __name__ == '__main__':
    print("=" * 50)
    print(settings.APP_NAME)
    print("=" * 50)

    port = int(os.environ.get('PORT', 5000))

    print(f"\nVersion: {settings.APP_VERSION}")
    print(f"Starting server at http://localhost:{port}")
    print("Press Ctrl+C to stop\n")

    app.run(debug=settings.DEBUG, host='0.0.0.0', port=port)
