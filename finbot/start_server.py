#!/usr/bin/env python3
"""
Server startup wrapper.

Usage:
    python -m finbot.start_server
"""
import os
import sys

import uvicorn


def main() -> None:
    port = int(os.getenv("PORT", "8000"))
    print("[finbot] Starting integration service")
    print(f"[finbot] Server: http://localhost:{port}")
    print("[finbot] Press CTRL+C to stop")
    try:
        uvicorn.run(
            "finbot.main:app",
            host="0.0.0.0",
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[finbot] Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
