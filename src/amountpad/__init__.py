"""amountpad -- reactive amount-entry calculator with live currency conversion."""

__version__ = "0.3.0"
