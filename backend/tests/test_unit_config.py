from doccredit.platform.config import Settings
import pytest


def test_billing_scope_defaults_to_school():
    assert Settings(CREDIT_BILLING_SCOPE="").billing_scope == "school"


def test_billing_scope_accepts_user_case_insensitively():
    assert Settings(CREDIT_BILLING_SCOPE=" User ").billing_scope == "user"


def test_unknown_billing_scope_falls_back_to_school():
    assert Settings(CREDIT_BILLING_SCOPE="district").billing_scope == "school"


def test_negative_starting_credits_fail_fast():
    with pytest.raises(ValueError):
        Settings(NEW_BALANCE_STARTING_CREDITS=-5)


def test_bulk_limit_must_be_positive():
    with pytest.raises(ValueError):
        Settings(BULK_PERMISSION_MAX_ITEMS=0)


def test_is_production_flag():
    assert Settings(DEPLOYMENT_ENV="Production").is_production is True
    assert Settings(DEPLOYMENT_ENV="staging").is_production is False
