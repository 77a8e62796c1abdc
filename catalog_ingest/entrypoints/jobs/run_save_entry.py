# ==============================================================================
# 목적 : JSON 파일로 카탈로그 엔트리 하나를 생성/수정하는 코드
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import argparse, json, logging
from pathlib import Path
from typing import List, Optional

from catalog_ingest.application.services.authorization import AdminGuard
from catalog_ingest.application.usecases.save_catalog_entry import save_catalog_entry
from catalog_ingest.application.usecases.wiring import build_document_store, build_identity
from catalog_ingest.common.config import get_str, load_config
from catalog_ingest.domain.errors import AuthorizationError

_log = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create or update one catalog entry from a JSON file.")
    p.add_argument("entry", type=Path, help="JSON body (title, description, category, imageUrl, ...)")
    p.add_argument("--config", type=Path, default=Path("config/config.yaml"))
    p.add_argument("--token", default=None)
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    store = None
    try:
        cfg = load_config(args.config)
        payload = json.loads(args.entry.read_text(encoding="utf-8"))
        store = build_document_store(cfg)
        guard = AdminGuard(build_identity(cfg), store, get_str(cfg, "catalog.users_collection", "users"))
        uid = guard.require_admin(args.token if args.token is not None else get_str(cfg, "auth.token"))
        result = save_catalog_entry(store, payload, uid=uid, collection=get_str(cfg, "catalog.collection", "wallpapers"))
    except AuthorizationError as e:
        _log.error("Access denied: %s", e)
        return 1
    except Exception:
        _log.exception("Save failed")
        return 1
    finally:
        if store is not None:
            store.close()

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.success else 2


if __name__ == "__main__":
    raise SystemExit(main())
