# tools/probe.py
from __future__ import annotations
import argparse
import json
import logging
import sys

# Project imports
sys.path.append(".")
from ffnews.config import setup_logging
from ffnews.net import make_client
from ffnews.probe import probe


def main():
    p = argparse.ArgumentParser(description="Dry-run every fetch strategy against a site and recommend one.")
    p.add_argument("url", help="Site or section URL, e.g. https://www.fantasypros.com/nfl/")
    p.add_argument("--json", action="store_true", help="Print the full probe result as JSON")
    p.add_argument("--debug", action="store_true", help="Verbose HTTP and parsing logs")
    args = p.parse_args()

    setup_logging(logging.DEBUG if args.debug else logging.WARNING)

    with make_client() as client:
        result = probe(client, args.url)

    if args.json:
        print(json.dumps(result.model_dump(), indent=2))
        return

    rec = result.recommendation
    print(f"[base] {result.base_url}")
    print(f"[recommend] {rec.method}: {rec.rationale}")
    for key in ("feed_url", "adapter_key", "selector", "suggested_url"):
        val = getattr(rec, key)
        if val:
            print(f"    {key} = {val}")

    print("[feeds]")
    for f in result.feeds:
        status = f"ok {f.item_count}" if f.ok else (f.error or "empty")
        print(f"    {f.feed_url:<60} {status}")
    print("[adapters]")
    for a in result.adapters:
        status = f"ok {a.item_count}" if a.ok else (a.error or "empty")
        print(f"    {a.key:<20} {status}")
    print("[selectors]")
    for s in result.scrapes:
        status = f"ok {s.link_count}" if s.ok else (s.error or "no links")
        print(f"    {s.selector:<45} {status}")

    print(f"[preview] {len(result.preview)} items")
    for it in result.preview[:15]:
        print(f"    - {it.title} <{it.url}>")


if __name__ == "__main__":
    main()
