# ==============================================================================
# 목적 : Identity Provider 인터페이스
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================


class IdentityProvider:
    def verify_token(self, token: str) -> str:
        """bearer 토큰을 검증하고 uid를 반환합니다. 실패 시 AuthorizationError."""
        raise NotImplementedError
