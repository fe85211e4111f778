from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="CronJob image sync CLI")
    p.add_argument("--api", default="http://localhost:8080", help="Controller API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_ev = sub.add_parser("events", help="Show recorded events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_rec = sub.add_parser("reconciles", help="Show recent reconcile outcomes")
    s_rec.add_argument("--limit", type=int, default=20)

    s_run = sub.add_parser("reconcile", help="Reconcile one Deployment now")
    s_run.add_argument("--namespace", required=True)
    s_run.add_argument("--name", required=True, help="Deployment name")

    sub.add_parser("queue", help="Show work queue depth and in-flight keys")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconciles":
        r = requests.get(f"{base}/reconciles", params={"limit": args.limit}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/reconcile/{args.namespace}/{args.name}", timeout=60)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "queue":
        r = requests.get(f"{base}/queue", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
