"""Helpers that mask personal identifiers before they reach a log line."""


def mask_phone(phone: str | None) -> str:
    """Mask a phone number for logging: ``+234*******000``."""
    if not phone or len(phone) < 8:
        return "***INVALID***"
    return f"{phone[:4]}{'*' * (len(phone) - 7)}{phone[-3:]}"


def mask_email(email: str | None) -> str:
    """Mask an email for privacy: ``j***n@example.com``."""
    if not email or "@" not in email:
        return "***INVALID***"
    local, domain = email.rsplit("@", 1)
    if not local:
        return f"***@{domain}"
    if len(local) <= 2:
        masked_local = local[0] + "***"
    else:
        masked_local = local[0] + "***" + local[-1]
    return f"{masked_local}@{domain}"
