import pytest

from viral_payouts.access import dashboard_path, resolve_redirect
from viral_payouts.models import UserRole
from viral_payouts.security import SessionClaims


def claims(role=UserRole.BRAND, *, is_admin=False, is_onboarded=True):
    return SessionClaims(user_id=1, role=role, is_admin=is_admin, is_onboarded=is_onboarded)


@pytest.mark.parametrize("path", ["/", "/marketplace", "/login", "/signup", "/api/wallet", "/t/abc123"])
def test_public_paths_pass_without_session(path):
    assert resolve_redirect(path, None) is None


def test_anonymous_page_request_goes_to_login_with_callback():
    assert resolve_redirect("/brand/dashboard", None) == "/login?callbackUrl=%2Fbrand%2Fdashboard"


def test_wrong_role_is_sent_to_own_dashboard():
    assert resolve_redirect("/brand/campaigns", claims(UserRole.CREATOR)) == "/creator/dashboard"
    assert resolve_redirect("/creator/earnings", claims(UserRole.BRAND)) == "/brand/dashboard"
    assert resolve_redirect("/brand/dashboard", claims(None)) == "/choose-role"


def test_onboarding_is_enforced_before_role_pages():
    pending = claims(UserRole.BRAND, is_onboarded=False)
    assert resolve_redirect("/brand/dashboard", pending) == "/brand/onboarding"
    assert resolve_redirect("/brand/onboarding", pending) is None
    assert resolve_redirect("/brand/dashboard", claims(UserRole.BRAND)) is None


def test_admin_pages_require_admin_flag():
    assert resolve_redirect("/admin", claims(UserRole.CREATOR)) == "/creator/dashboard"
    assert resolve_redirect("/admin/payouts", claims(UserRole.BRAND, is_admin=True)) is None


def test_generic_onboarding_resolves_per_role():
    assert resolve_redirect("/onboarding", claims(None)) == "/choose-role"
    assert resolve_redirect("/onboarding", claims(UserRole.CREATOR)) == "/creator/onboarding"


def test_dashboard_path():
    assert dashboard_path(None) == "/login"
    assert dashboard_path(claims(None)) == "/choose-role"
    assert dashboard_path(claims(UserRole.CREATOR, is_onboarded=False)) == "/creator/onboarding"
    assert dashboard_path(claims(UserRole.CREATOR)) == "/creator/dashboard"
    assert dashboard_path(claims(UserRole.BRAND)) == "/brand/dashboard"
