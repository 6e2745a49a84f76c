# surl_mgr.py
"""
Administrative CLI for one SURL shard.

    surl-mgr --dsn postgresql://... -n 1 add https://example.com/page
    surl-mgr --dsn postgresql://... -n 1 -e 3600 add https://example.com/promo
    surl-mgr --dsn postgresql://... -n 1 clean
    surl-mgr --dsn postgresql://... -n 1 delete 2xYz...

Defaults come from surl_platform.config (SURL_STORAGE_BACKEND, SURL_DB_DSNS,
SURL_DB_TABLE, SURL_SHARD, SURL_EPOCH_MS, SURL_NOTIFY_CHANNEL). Writer backends
always publish change notifications so redirect servers can flush their caches.
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from surl_platform.config import load_settings
from surl_platform.errors import SurlError
from surl_platform.manager.url_manager import UrlManager
from surl_platform.storage.storage_factory import get_backend

log = logging.getLogger("surl.mgr")


def build_parser() -> argparse.ArgumentParser:
    cfg = load_settings()
    ap = argparse.ArgumentParser(prog="surl-mgr", description="Manage short links on one shard")
    ap.add_argument("--backend", default=cfg.STORAGE_BACKEND, help="memory or postgres")
    ap.add_argument("--dsn", default=cfg.DB_DSNS[0] if cfg.DB_DSNS else None, help="shard database DSN")
    ap.add_argument("--table", default=cfg.DB_TABLE)
    ap.add_argument("-n", "--shard", type=int, default=cfg.SHARD, help="shard number (0-1023)")
    ap.add_argument("-e", "--expire", type=int, default=-1, help="expire in (seconds); <=0 never expires")
    ap.add_argument("-b", "--base", default=None, help="print full short URLs under this base URL")
    sub = ap.add_subparsers(dest="command", required=True)
    add = sub.add_parser("add", help="insert a URL or reuse an existing id")
    add.add_argument("url")
    sub.add_parser("clean", help="remove expired entries")
    rm = sub.add_parser("delete", help="delete one entry by external id")
    rm.add_argument("id")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=getattr(logging, cfg.LOG_LEVEL, logging.INFO), stream=sys.stderr)

    try:
        kwargs = {}
        if args.backend == "postgres":
            kwargs = {"dsn": args.dsn, "table": args.table, "notify_channel": cfg.NOTIFY_CHANNEL}
        backend = get_backend(args.backend, shard=args.shard, create=True, **kwargs)
        try:
            mgr = UrlManager(backend, epoch_ms=cfg.EPOCH_MS)
            if args.command == "add":
                expire_at = int(time.time()) + args.expire if args.expire > 0 else None
                code = mgr.get_url(mgr.insert_or_reuse(args.url, expire_at))
                print(args.base.rstrip("/") + "/" + code if args.base else code)
            elif args.command == "clean":
                print(mgr.clean())
            elif args.command == "delete":
                if not mgr.delete(args.id):
                    log.error("no entry %s on shard %d", args.id, args.shard)
                    return 1
        finally:
            backend.close()
    except SurlError as exc:
        log.error("%s: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
