# ==============================================================================
# 목적 : 미게시 오브젝트(orphan) 조회 / 게시를 실행하는 코드
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import argparse, json, logging
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from catalog_ingest.application.usecases.reconcile import reconcile
from catalog_ingest.domain.errors import AuthorizationError

_log = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="List stored wallpapers missing from the catalog and optionally publish them.")
    p.add_argument("--config", type=Path, default=Path("config/config.yaml"))
    p.add_argument("--token", default=None)
    p.add_argument("--publish", action="store_true", help="publish orphans with default metadata")
    p.add_argument("--select", nargs="*", default=None, help="object keys or names to publish (default: all)")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    bar = tqdm(total=100, desc="Publish", unit="%", disable=not args.publish)
    try:
        report = reconcile(
            config_path=args.config,
            token=args.token,
            publish=args.publish,
            select=args.select,
            on_progress=lambda p: bar.update(max(0, p - bar.n)),
        )
    except AuthorizationError as e:
        _log.error("Access denied: %s", e)
        return 1
    except Exception:
        _log.exception("Reconcile failed")
        return 1
    finally:
        bar.close()

    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    _log.info("Done. stored=%d published=%d orphans=%d", report.stored, report.published, len(report.orphans))
    if report.publish is not None and not report.publish.ok:
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
