"""
Mint Price Derivation

Price of a mint transaction is the mint's reference rate divided by the
epoch mint size. The reference rate from the registrar is authoritative over
the per-event fee reported upstream.
"""

from decimal import Decimal

from .types import Mint, Transaction, UpstreamMintEvent


ZERO = Decimal(0)


def derive_price(reference_rate: Decimal, mint_size_epoch: Decimal) -> Decimal:
    """Return reference_rate / mint_size_epoch, or 0 when size is not positive."""
    if mint_size_epoch > 0:
        return Decimal(reference_rate) / mint_size_epoch
    return ZERO


def build_transaction(mint: Mint, event: UpstreamMintEvent) -> Transaction:
    """Build the stored transaction for an upstream event of this mint."""
    return Transaction(
        mint_id=mint.address,
        timestamp=event.timestamp,
        mint_size_epoch=event.mint_size_epoch,
        mint_fee=mint.fee_rate,
        price=derive_price(mint.fee_rate, event.mint_size_epoch),
        current_era=event.current_era,
        current_epoch=event.current_epoch,
    )
