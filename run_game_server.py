#!/usr/bin/env python3
"""
Arena Game Server - Launcher
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from arena_server.launcher.orchestrator import main

if __name__ == '__main__':
    sys.exit(main())
