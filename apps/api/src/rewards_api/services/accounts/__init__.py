"""Account and merchant onboarding exports."""

from .account_service import AccountService, build_referral_code  # noqa: F401
