# =============================================
# File: kitchen_dss/cli/analyze.py
# Purpose: CLI entrypoint to run one decision-support analysis over a JSON orders file.
# Usage:
#   python -m kitchen_dss.cli.analyze --orders data/orders.json --query "How can I reduce rejection rate?"
# =============================================
from __future__ import annotations
import argparse
import asyncio
import json
import os
import sys
from typing import List

from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

# service modules read their settings at import time
load_dotenv()

from kitchen_dss.errors import DSSError
from kitchen_dss.models import OrderRecord
from kitchen_dss.services.dss import DSSService
from kitchen_dss.services.gateway import DEFAULT_BASE_URL

_ORDERS = TypeAdapter(List[OrderRecord])


def load_orders(path: str) -> List[OrderRecord]:
    """Read a JSON array of orders (snake_case or camelCase keys)."""
    with open(path, "r", encoding="utf-8") as f:
        return _ORDERS.validate_python(json.load(f))


def main(argv=None):
    ap = argparse.ArgumentParser(description="Run a DSS analysis over an orders JSON file.")
    ap.add_argument("--orders", required=True, help="Path to a JSON array of orders")
    ap.add_argument("--query", required=True, help="Manager question, e.g. 'How can I reduce rejection rate?'")
    ap.add_argument("--identity", default="", help="Name used in the prompt persona")
    ap.add_argument("--base-url", default=DEFAULT_BASE_URL, help=f"Local model server (default: {DEFAULT_BASE_URL})")
    args = ap.parse_args(argv)

    try:
        orders = load_orders(args.orders)
    except (OSError, ValueError, ValidationError) as e:
        print(f"[ERROR] Could not load orders: {e}", file=sys.stderr)
        sys.exit(1)

    if not os.getenv("OPENAI_API_KEY"):
        print("[INFO] OPENAI_API_KEY not set; cloud tier disabled.", file=sys.stderr)

    service = DSSService()
    stats = service.build_knowledge_base(orders)
    print(f"[OK] Knowledge base ready ({stats['embeddings_count']} embeddings)", file=sys.stderr)

    try:
        result = asyncio.run(service.analyze(args.query, orders, args.identity, args.base_url))
    except DSSError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(2)

    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
