# ==============================================================================
# 목적 : 관리자 권한 확인(Guard)
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import logging

from catalog_ingest.domain.errors import AuthorizationError
from catalog_ingest.ports.document_store import DocumentStore
from catalog_ingest.ports.identity import IdentityProvider

_log = logging.getLogger(__name__)


class AdminGuard:
    """토큰 검증 + users/{uid}.isAdmin 확인을 묶은 guard.

    require_admin()이 통과하기 전에는 어떤 파이프라인 작업도 시작하지 않습니다.
    """
    def __init__(self, identity: IdentityProvider, store: DocumentStore, users_collection: str = "users"):
        self._identity = identity
        self._store = store
        self._users = users_collection

    def require_admin(self, token: str) -> str:
        """관리자 uid를 반환합니다.

        Raises:
            AuthorizationError: 토큰 검증 실패, 사용자 문서 없음, isAdmin != True.
        """
        uid = self._identity.verify_token(token)
        user = self._store.get(self._users, uid)
        if not user or user.get("isAdmin") is not True:
            _log.warning("Access denied for uid=%s", uid)
            raise AuthorizationError("Forbidden: Admin access required")
        return uid
