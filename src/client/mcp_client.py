import argparse
import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional

from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp import ClientSession


async def run(
    mode: str,
    *,
    request_path: Optional[str] = None,
    budget: Optional[float] = None,
    duration: str = "30일",
    services: Optional[List[Dict]] = None,
):
    """
    Run MCP client requests against a spawned local server.

    Example:
        >>> asyncio.run(run("rules", budget=300000, duration="7일"))
    """
    # Spawn MCP server as a subprocess over stdio
    server = StdioServerParameters(
        command="python",
        args=["src/run_mcp.py", "--mode", "server"]
    )
    async with stdio_client(server) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()

            if mode == "generate":
                if not request_path:
                    raise ValueError("request_path is required for mode=generate")
                request = json.loads(Path(request_path).read_text(encoding="utf-8"))
                result = await session.call_tool(
                    "generate_contract",
                    {
                        "contract_data": request.get("contractData") or {},
                        "selected_services": request.get("selectedServices") or [],
                        "quote_data": request.get("quoteData"),
                        "options": request.get("options") or {},
                    }
                )
                print(result)
                return

            if budget is None:
                raise ValueError(f"budget is required for mode={mode}")

            if mode == "rules":
                result = await session.call_tool(
                    "select_clauses_by_rules",
                    {
                        "budget": budget,
                        "duration": duration,
                        "services": services or [],
                    }
                )
                print(result)
                return

            result = await session.call_tool(
                "recommend_complexity",
                {
                    "services": services or [],
                    "amount": budget,
                    "duration": duration,
                }
            )
            print(result)


def main():
    """
    CLI entry for the MCP client.
    """
    parser = argparse.ArgumentParser(description="MCP client runner")
    parser.add_argument("--mode", choices=["generate", "rules", "complexity"], required=True)
    parser.add_argument("--request", dest="request_path")
    parser.add_argument("--budget", type=float)
    parser.add_argument("--duration", default="30일")
    args = parser.parse_args()

    asyncio.run(
        run(
            args.mode,
            request_path=args.request_path,
            budget=args.budget,
            duration=args.duration,
        )
    )


if __name__ == "__main__":
    main()
