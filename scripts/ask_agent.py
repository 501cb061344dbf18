#!/usr/bin/env python3
"""
Ask the configured agent a question from the command line.

Reads credentials from .env / the environment (RELEVANCE_STACK_BASE,
RELEVANCE_PROJECT_ID, RELEVANCE_API_KEY, RELEVANCE_AGENT_ID) and prints the
result(s) as JSON.

Run from project root:

    python scripts/ask_agent.py "monthly sales by region"
    python scripts/ask_agent.py "monthly sales by region" --recursive
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Project root on path so "agent_relay" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from agent_relay.core.config import AgentConfig
from agent_relay.core.errors import AgentServiceError
from agent_relay.services.agent_service import AgentCommunicationService


async def run(query: str, conversation_id: str | None, recursive: bool) -> list[dict]:
    service = AgentCommunicationService(AgentConfig.from_env())
    if recursive:
        results = await service.execute_recursive_queries(query, conversation_id)
    else:
        results = [await service.execute_query(query, conversation_id)]
    return [r.model_dump() for r in results]


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a query to the configured agent.")
    parser.add_argument("query", help="Natural-language question for the agent.")
    parser.add_argument("--conversation-id", default=None, help="Conversation scope (defaults to config).")
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="Follow up automatically until the answer is complete.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        results = asyncio.run(run(args.query, args.conversation_id, args.recursive))
    except AgentServiceError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        sys.exit(1)
    print(json.dumps(results, indent=2, default=str))


if __name__ == "__main__":
    main()
