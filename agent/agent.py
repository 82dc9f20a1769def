"""
Background Geotag Verification Agent — operator entry point
===========================================================
The agent itself runs inside a host application (see
geotag_core.runner.build_agent). This script exposes the operator
commands over the agent's durable state.

Usage:
    python agent.py status
    python agent.py flush
    python agent.py plan --limit 24
"""

import sys

from geotag_core.runner import main

if __name__ == "__main__":
    sys.exit(main())
