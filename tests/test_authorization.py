import pytest

from catalog_ingest.application.services.authorization import AdminGuard
from catalog_ingest.domain.errors import AuthorizationError
from conftest import FakeIdentity


@pytest.fixture
def guard(document_store):
    document_store.set("users", "admin-1", {"isAdmin": True})
    document_store.set("users", "user-1", {"isAdmin": False})
    document_store.set("users", "truthy-1", {"isAdmin": "yes"})
    identity = FakeIdentity({"t-admin": "admin-1", "t-user": "user-1", "t-ghost": "ghost", "t-truthy": "truthy-1"})
    return AdminGuard(identity, document_store)


def test_admin_passes(guard):
    assert guard.require_admin("t-admin") == "admin-1"


@pytest.mark.parametrize("token", ["t-user", "t-ghost", "t-truthy"])
def test_non_admin_is_forbidden(guard, token):
    with pytest.raises(AuthorizationError, match="Admin access required"):
        guard.require_admin(token)


def test_invalid_token_is_rejected(guard):
    with pytest.raises(AuthorizationError):
        guard.require_admin("bogus")
