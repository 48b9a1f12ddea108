#!/usr/bin/env python3
"""FastAPI server entry point for the widget generation service."""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Widget Generation FastAPI Server")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"), help="Host to bind to")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")), help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument(
        "--agent-debug",
        action="store_true",
        help="Log prompt previews, raw agent output and every stream event",
    )

    args = parser.parse_args()

    if args.agent_debug:
        # read by utils.logger in this process and in reload workers
        os.environ["AGENT_DEBUG"] = "true"

    uvicorn.run(
        "server.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if args.agent_debug else "info",
    )
