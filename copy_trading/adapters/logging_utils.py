"""
Broker Adapter - Secure Logging Utilities.

============================================================
SECURITY REQUIREMENTS
============================================================
Adapter logs carry bearer tokens and brokerage account numbers.
Neither is ever written in full:

- Tokens keep their first characters only
- Account numbers keep their last four digits only
- Order payloads are masked recursively (legs are lists)

============================================================
"""

from typing import Any, Dict


# Headers holding credentials
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "x-api-key",
    "cookie",
    "set-cookie",
})

# Payload keys holding credentials
SECRET_KEYS = frozenset({
    "password",
    "client_secret",
    "access_token",
    "refresh_token",
    "session_token",
    "remember_token",
    "token",
})

# Payload keys holding brokerage account numbers
ACCOUNT_KEYS = frozenset({
    "accountnumber",
    "account_number",
    "accountid",
})

MASK = "***"


def mask_value(value: str, show_chars: int = 4) -> str:
    """Keep the first `show_chars` characters of a secret."""
    if not value or len(value) <= show_chars:
        return MASK
    return f"{value[:show_chars]}...{MASK}"


def mask_account(account_ref: str) -> str:
    """
    Mask a brokerage account number.

    Examples:
        "5WT12345" -> "****2345"
        "12"       -> "****"
    """
    account_ref = str(account_ref or "")
    if len(account_ref) <= 4:
        return "****"
    return f"****{account_ref[-4:]}"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask credential headers, keeping the auth scheme readable."""
    masked = {}
    for key, value in (headers or {}).items():
        if key.lower() not in SENSITIVE_HEADERS:
            masked[key] = value
            continue
        scheme, _, token = str(value).partition(" ")
        if token:
            masked[key] = f"{scheme} {mask_value(token)}"
        else:
            masked[key] = mask_value(scheme)
    return masked


def mask_params(params: Any) -> Any:
    """Mask secrets and account numbers anywhere in an order payload."""
    if isinstance(params, list):
        return [mask_params(item) for item in params]
    if not isinstance(params, dict):
        return params

    masked = {}
    for key, value in params.items():
        name = str(key).lower()
        if name in SECRET_KEYS:
            masked[key] = mask_value(str(value)) if value else value
        elif name in ACCOUNT_KEYS:
            masked[key] = mask_account(value)
        else:
            masked[key] = mask_params(value)
    return masked
