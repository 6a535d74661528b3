#!/usr/bin/env python3
"""
Start the orchestrator API with uvicorn.
"""

import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description='Run the Codepilot orchestrator')
    parser.add_argument('--host', default=os.getenv('HOST', '127.0.0.1'),
                        help='Interface to bind (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=int(os.getenv('PORT', '3000')),
                        help='Port to listen on (default: 3000)')
    parser.add_argument('--reload', action='store_true',
                        help='Reload on code changes')
    args = parser.parse_args()

    print(f"🚀 Orchestrator running on http://{args.host}:{args.port}")
    uvicorn.run("codepilot.api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
