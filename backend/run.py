#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Creates tables on startup (ENVIRONMENT=development) and reloads on change.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("ENVIRONMENT", "development")

import uvicorn

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    print(f"Access at: http://localhost:{port}")
    print(f"API Docs: http://localhost:{port}/docs")

    uvicorn.run("spa_engine.main:app", host=host, port=port, reload=True, log_level="info")
