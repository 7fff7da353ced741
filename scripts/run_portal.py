#!/usr/bin/env python3
"""
Run the portal app locally.

Reads settings from the .env file in the project root.
Run from project root: python scripts/run_portal.py [--host 127.0.0.1] [--port 3000]
"""

import argparse
import os
import sys

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from dotenv import load_dotenv
load_dotenv(os.path.join(project_root, ".env"))

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the AlphaCare portal")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run("alphacare_portal.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
