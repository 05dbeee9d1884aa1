import argparse
import asyncio
import json

from client.mcp_client import run as run_client
from mcp_server.mcp_server import mcp


def main():
    """
    Entry point for running MCP server or client.

    Example:
        >>> # Server
        >>> # python src/run_mcp.py --mode server
        >>> # Client
        >>> # python src/run_mcp.py --mode generate --request request.json
        >>> # python src/run_mcp.py --mode rules --budget 300000 --duration 7일
    """
    parser = argparse.ArgumentParser(description="MCP server/client entry")
    parser.add_argument("--mode", choices=["server", "generate", "rules", "complexity"], default="server")
    parser.add_argument("--request", dest="request_path")
    parser.add_argument("--budget", type=float)
    parser.add_argument("--duration", default="30일")
    parser.add_argument("--services", help="JSON list of services")
    args = parser.parse_args()

    if args.mode == "server":
        mcp.run()
        return

    asyncio.run(
        run_client(
            args.mode,
            request_path=args.request_path,
            budget=args.budget,
            duration=args.duration,
            services=json.loads(args.services) if args.services else None,
        )
    )


if __name__ == "__main__":
    main()
