# ==============================================================================
# 목적 : 카탈로그 전체 삭제를 실행하는 코드(확인 문구 입력 필요)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import argparse, json, logging
from pathlib import Path
from typing import List, Optional

from catalog_ingest.application.usecases.purge_catalog import CONFIRMATION_PHRASE, purge
from catalog_ingest.domain.errors import AuthorizationError, ConfirmationError

_log = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Delete every stored wallpaper and catalog document. Cannot be undone.")
    p.add_argument("--config", type=Path, default=Path("config/config.yaml"))
    p.add_argument("--token", default=None)
    p.add_argument("--confirm", default=None, help=f'must be exactly "{CONFIRMATION_PHRASE}"')
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    confirmation = args.confirm
    if confirmation is None:
        confirmation = input(f'This cannot be undone. Type "{CONFIRMATION_PHRASE}" to continue: ').strip()

    try:
        result = purge(confirmation=confirmation, config_path=args.config, token=args.token)
    except ConfirmationError as e:
        _log.error("Aborted: %s", e)
        return 1
    except AuthorizationError as e:
        _log.error("Access denied: %s", e)
        return 1
    except Exception:
        _log.exception("Purge failed")
        return 1

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    _log.info("Done. objects=%d documents=%d errors=%d",
              result.objects_deleted, result.documents_deleted, len(result.errors))
    return 0 if not result.errors else 2


if __name__ == "__main__":
    raise SystemExit(main())
