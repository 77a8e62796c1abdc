# ==============================================================================
# 목적 : HTTP 기반 토큰 검증 어댑터
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from catalog_ingest.common.runtime import request_with_retry
from catalog_ingest.domain.errors import AuthorizationError
from catalog_ingest.ports.identity import IdentityProvider

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpIdentityConfig:
    """토큰 검증 endpoint 설정.

    Attributes:
        verify_url: bearer 토큰을 받아 {"uid": ...}를 돌려주는 endpoint.
        timeout_sec: 요청 타임아웃(초).
        retries: 네트워크 오류 시 총 시도 횟수. 4xx 응답은 재시도하지 않습니다.
    """
    verify_url: str
    timeout_sec: int = 10
    retries: int = 3


class _Rejected(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"token rejected: HTTP {status_code}")
        self.status_code = status_code


class HttpIdentityProvider(IdentityProvider):
    def __init__(self, cfg: HttpIdentityConfig, session: Optional[requests.Session] = None):
        self._cfg = cfg
        self._session = session or requests.Session()

    def verify_token(self, token: str) -> str:
        """토큰을 검증하고 uid를 반환합니다.

        401/403 등 4xx 응답은 즉시 AuthorizationError로 변환하고,
        연결 오류/5xx는 request_with_retry 정책에 따라 재시도합니다.

        Raises:
            AuthorizationError: 토큰이 비어있거나, 거부되었거나, 응답에 uid가 없는 경우.
        """
        if not token or not token.strip():
            raise AuthorizationError("Missing bearer token")

        def _call() -> dict:
            r = self._session.post(
                self._cfg.verify_url,
                headers={"Authorization": f"Bearer {token.strip()}", "Accept": "application/json"},
                timeout=self._cfg.timeout_sec,
            )
            if 400 <= r.status_code < 500:
                raise _Rejected(r.status_code)
            r.raise_for_status()
            return r.json()

        try:
            data = request_with_retry(
                _call,
                retries=self._cfg.retries,
                is_retriable=lambda e: not isinstance(e, _Rejected),
            )
        except _Rejected as e:
            raise AuthorizationError(str(e)) from e
        except RuntimeError as e:
            raise AuthorizationError(f"Failed to verify credentials: {e}") from e

        uid = str((data or {}).get("uid") or "").strip()
        if not uid:
            raise AuthorizationError("Token verification returned no uid")
        _log.info("Verified identity uid=%s", uid)
        return uid
