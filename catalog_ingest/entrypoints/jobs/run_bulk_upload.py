# ==============================================================================
# 목적 : 폴더 이미지 벌크 업로드 + 카탈로그 게시를 실행하는 코드
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-06
# AI 활용 여부 :
# ==============================================================================

from __future__ import annotations

import argparse, json, logging, signal
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from catalog_ingest.adapters.csv.metadata_csv import write_csv_template
from catalog_ingest.application.services.progress import ProgressEvent
from catalog_ingest.application.services.upload_queue import UploadQueue
from catalog_ingest.application.usecases.bulk_upload import bulk_upload
from catalog_ingest.domain.errors import AuthorizationError

_log = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("catalog_ingest.application.services.upload_task").setLevel(logging.WARNING)


class TqdmProgressView:
    """큐 이벤트를 tqdm 진행 바로 렌더링합니다(업로드 / 게시 각각 한 개)."""

    def __init__(self):
        self._upload: Optional[tqdm] = None
        self._publish: Optional[tqdm] = None
        self._last: Dict[str, int] = {}

    def __call__(self, event: ProgressEvent) -> None:
        if event.kind == "queue_progress":
            bar = self._bar("upload")
            bar.update(max(0, (event.progress or 0) - bar.n))
        elif event.kind == "publish_progress":
            bar = self._bar("publish")
            bar.update(max(0, (event.progress or 0) - bar.n))
        elif event.kind == "item_status" and event.status == "error":
            tqdm.write(f"[error] {event.item_id}: {event.message}")

    def _bar(self, name: str) -> tqdm:
        if name == "upload":
            if self._upload is None:
                self._upload = tqdm(total=100, desc="Upload", unit="%")
            return self._upload
        if self._publish is None:
            self._publish = tqdm(total=100, desc="Publish", unit="%")
        return self._publish

    def close(self) -> None:
        for bar in (self._upload, self._publish):
            if bar is not None:
                bar.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Bulk upload wallpapers and publish them to the catalog.")
    p.add_argument("--config", type=Path, default=Path("config/config.yaml"))
    p.add_argument("--input-dir", type=Path, default=None)
    p.add_argument("--csv", type=Path, default=None, help="metadata CSV (filename,title,description,category,price,tags)")
    p.add_argument("--token", default=None, help="admin bearer token (default: auth.token)")
    p.add_argument("--allow-partial", action="store_true", default=None, help="allow substring filename matching")
    p.add_argument("--no-publish", dest="publish", action="store_false", default=None)
    p.add_argument("--retry-failed", action="store_true", default=None)
    p.add_argument("--write-template", type=Path, default=None, help="write the CSV template to this path and exit")
    p.add_argument("--report", type=Path, default=None, help="write the JSON report to this path")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    if args.write_template is not None:
        path = write_csv_template(args.write_template)
        _log.info("CSV template written: %s", path)
        return 0

    view = TqdmProgressView()
    queues: List[UploadQueue] = []

    def _on_sigint(signum, frame):
        if queues:
            _log.warning("Interrupted, canceling all uploads")
            queues[0].cancel_all()
        else:
            raise KeyboardInterrupt

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = bulk_upload(
            config_path=args.config,
            input_dir=args.input_dir,
            csv_path=args.csv,
            token=args.token,
            allow_partial=args.allow_partial,
            publish_after=args.publish,
            retry_failed=args.retry_failed,
            listener=view,
            on_queue=queues.append,
        )
    except AuthorizationError as e:
        _log.error("Access denied: %s", e)
        return 1
    except Exception:
        _log.exception("Bulk upload failed")
        return 1
    finally:
        view.close()
        signal.signal(signal.SIGINT, previous)

    payload = report.to_dict()
    payload.pop("items", None)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    if args.report is not None:
        args.report.parent.mkdir(parents=True, exist_ok=True)
        args.report.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")

    _log.info("Done. status=%s summary=%s", report.status, report.summary)
    return 0 if report.status == "success" else 2


if __name__ == "__main__":
    raise SystemExit(main())
