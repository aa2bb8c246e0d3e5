#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[helios] listen={os.environ.get('HELIOS_LISTEN_HOST', '127.0.0.1')}:"
    f"{os.environ.get('HELIOS_LISTEN_PORT', '9333')} | "
    f"timeout_ms={os.environ.get('HELIOS_REQUEST_TIMEOUT_MS', '30000')}",
    file=sys.stderr,
)

from mcp_servers.helios.main import main  # noqa: E402

if __name__ == "__main__":
    main()
