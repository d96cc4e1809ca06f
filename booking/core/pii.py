"""Masking of personally identifiable data before it reaches the logs."""

INSURED_ID_LENGTH = 5


def mask_insured_id(insured_id: str | None) -> str:
    """
    Mask an insured id for logging.

    Only the first two digits stay visible; anything that is not a full-length
    id is masked entirely.

    Args:
        insured_id: Insured id to mask

    Returns:
        Masked value, e.g. ``"12***"``
    """
    if not insured_id or len(insured_id) != INSURED_ID_LENGTH:
        return "***"
    return f"{insured_id[:2]}***"
