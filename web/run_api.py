"""Run the upload API server. Run from project root: python web/run_api.py"""
import logging
import sys
from pathlib import Path

# Add project root to path so tagger imports work
_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_root))

import uvicorn

import config

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "web.api.main:app",
        host="0.0.0.0",
        port=3000,
        reload=False,
        proxy_headers=config.TRUST_PROXY,
    )
