"""Centralized brand configuration for user-facing copy."""

BRAND_NAME = "DocCredit"
BRAND_APP_DESCRIPTION = "Document entitlement and credit metering for school tenants"
