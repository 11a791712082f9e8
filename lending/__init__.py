"""
lending/ - Flash loan facility.

Modules:
- flash_lender: FlashLoanProvider / FlashLoanRecipient protocols and the
  in-memory FlashLender
"""

from lending.flash_lender import FlashLender, FlashLoanProvider, FlashLoanRecipient

__all__ = [
    "FlashLender",
    "FlashLoanProvider",
    "FlashLoanRecipient",
]
