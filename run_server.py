#!/usr/bin/env python
"""
Local runner for the manzai service.
"""
import os
import sys

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"[INFO] Starting manzai service on port {port}...")
    try:
        uvicorn.run("manzai.main:app", host=os.getenv("HOST", "127.0.0.1"), port=port, reload=False)
    except KeyboardInterrupt:
        print("\n[INFO] Shutting down...")
        sys.exit(0)
