"""Transfer fee rule: free within one provider, per-unit fee across providers."""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def compute_transfer_fee(source_provider: str, target_provider: str, quantity: int, unit_fee: Decimal) -> Decimal:
    """
    Examples:
        compute_transfer_fee("shipbob", "fourpx", 4, Decimal("0.50"))  # Decimal("2.00")
        compute_transfer_fee("shipbob", "shipbob", 4, Decimal("0.50"))  # Decimal("0.00")
    """
    if source_provider == target_provider:
        return Decimal("0.00")
    return (Decimal(quantity) * Decimal(unit_fee)).quantize(CENT, rounding=ROUND_HALF_UP)
