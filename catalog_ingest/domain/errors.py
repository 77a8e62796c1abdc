# ==============================================================================
# 목적 : 파이프라인 도메인 예외 정의
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================


class CatalogIngestError(Exception):
    """catalog_ingest에서 발생하는 예외의 공통 부모 클래스."""


class AuthorizationError(CatalogIngestError):
    """토큰 검증 실패 또는 관리자 권한이 없을 때 발생합니다. 작업 전체가 중단됩니다."""


class UploadCanceledError(CatalogIngestError):
    """진행 중인 전송이 cancel handle로 중단되었을 때 발생합니다."""

    def __init__(self, item_id: str):
        super().__init__("Upload canceled")
        self.item_id = item_id


class StoreError(CatalogIngestError):
    """Object store / Document store 호출 실패를 감싸는 예외."""


class BatchLimitError(StoreError):
    """하나의 batch write에 허용 개수 이상을 담으려 할 때 발생합니다."""


class ConfirmationError(CatalogIngestError):
    """되돌릴 수 없는 작업의 확인 문구가 일치하지 않을 때 발생합니다."""
