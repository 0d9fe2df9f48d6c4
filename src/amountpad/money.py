"""Monetary value types and the fiat currency table."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, field_validator


def normalize_currency(code: str) -> str:
    """Upper-case and strip a currency code."""
    return code.strip().upper()


class MonetaryValue(BaseModel):
    """An amount in a single currency.  Immutable."""

    model_config = ConfigDict(frozen=True)

    amount: float
    currency: str

    @field_validator("amount")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be a finite number")
        return v

    @field_validator("currency")
    @classmethod
    def _code(cls, v: str) -> str:
        return normalize_currency(v)


class FormattedValue(BaseModel):
    """Display strings for a ``MonetaryValue``."""

    model_config = ConfigDict(frozen=True)

    amount: str
    currency: str

    @property
    def display_string(self) -> str:
        if not self.currency:
            return self.amount
        return f"{self.amount} {self.currency}"


# ISO 4217 active fiat currency codes.  Anything else (BTC, ETH, USDT,
# app-specific tokens) is formatted with crypto precision.
FIAT_CURRENCIES: frozenset[str] = frozenset(
    """
    AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BHD BIF BMD BND
    BOB BRL BSD BTN BWP BYN BZD CAD CDF CHF CLP CNY COP CRC CUP CVE CZK DJF
    DKK DOP DZD EGP ERN ETB EUR FJD FKP GBP GEL GHS GIP GMD GNF GTQ GYD HKD
    HNL HTG HUF IDR ILS INR IQD IRR ISK JMD JOD JPY KES KGS KHR KMF KPW KRW
    KWD KYD KZT LAK LBP LKR LRD LSL LYD MAD MDL MGA MKD MMK MNT MOP MRU MUR
    MVR MWK MXN MYR MZN NAD NGN NIO NOK NPR NZD OMR PAB PEN PGK PHP PKR PLN
    PYG QAR RON RSD RUB RWF SAR SBD SCR SDG SEK SGD SHP SLE SOS SRD SSP STN
    SVC SYP SZL THB TJS TMT TND TOP TRY TTD TWD TZS UAH UGX USD UYU UZS VES
    VND VUV WST XAF XCD XOF XPF YER ZAR ZMW ZWL
    """.split()
)


def is_fiat(currency: str) -> bool:
    return normalize_currency(currency) in FIAT_CURRENCIES
