"""
Money value object for amounts exchanged with Razorpay.

Local amounts always use the cart convention of "local minor units"
(amount × 100, also for zero-decimal currencies). Razorpay expects the
currency's real smallest unit, so zero-decimal currencies are divided by
100 on the way out and multiplied by 100 on the way back.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF",
        "CLP",
        "DJF",
        "GNF",
        "JPY",
        "KMF",
        "KRW",
        "MGA",
        "PYG",
        "RWF",
        "UGX",
        "VND",
        "VUV",
        "XAF",
        "XOF",
        "XPF",
    }
)

SUPPORTED_CURRENCIES = frozenset(
    {
        "AED", "ALL", "AMD", "ARS", "AUD", "AWG", "AZN", "BAM", "BBD", "BDT",
        "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL", "BSD", "BTN", "BWP",
        "BZD", "CAD", "CHF", "CLP", "CNY", "COP", "CRC", "CUP", "CVE", "CZK",
        "DJF", "DKK", "DOP", "DZD", "EGP", "ETB", "EUR", "FJD", "GBP", "GHS",
        "GIP", "GMD", "GNF", "GTQ", "GYD", "HKD", "HNL", "HRK", "HTG", "HUF",
        "IDR", "ILS", "INR", "IQD", "ISK", "JMD", "JOD", "JPY", "KES", "KGS",
        "KHR", "KMF", "KRW", "KWD", "KYD", "KZT", "LAK", "LKR", "LRD", "LSL",
        "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MUR", "MVR", "MWK",
        "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK", "NPR", "NZD", "OMR",
        "PEN", "PGK", "PHP", "PKR", "PLN", "PYG", "QAR", "RON", "RSD", "RUB",
        "RWF", "SAR", "SCR", "SEK", "SGD", "SLL", "SOS", "SSP", "SVC", "SZL",
        "THB", "TND", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX", "USD", "UYU",
        "UZS", "VND", "VUV", "XAF", "XCD", "XOF", "XPF", "YER", "ZAR", "ZMW",
    }
)


def is_zero_decimal(currency: str) -> bool:
    """Check whether Razorpay treats the currency as having no minor unit."""
    return (currency or "").upper() in ZERO_DECIMAL_CURRENCIES


def is_currency_supported(currency: str) -> bool:
    """Check whether Razorpay accepts payments in the currency."""
    return (currency or "").upper() in SUPPORTED_CURRENCIES


@dataclass(frozen=True)
class Money:
    """
    Immutable monetary amount stored in local minor units.

    Attributes:
        amount: Integer amount in local minor units (× 100)
        currency: ISO currency code, normalised to upper case

    Example:
        >>> Money(amount=50000, currency="jpy").to_vendor_amount()
        500
        >>> Money.from_vendor_amount(500, "JPY").amount
        50000
    """

    amount: int
    currency: str = "INR"

    def __post_init__(self) -> None:
        """Validate and normalise after initialization."""
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            rounded = Decimal(str(self.amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            object.__setattr__(self, "amount", int(rounded))

        if self.amount < 0:
            raise ValueError(f"Money amount cannot be negative: {self.amount}")

        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

        object.__setattr__(self, "currency", self.currency.upper())

    def __str__(self) -> str:
        return f"{self.display_amount()} {self.currency}"

    @property
    def is_zero_decimal(self) -> bool:
        return is_zero_decimal(self.currency)

    def to_vendor_amount(self) -> int:
        """Amount in the unit Razorpay expects (paise for INR, yen for JPY)."""
        if self.is_zero_decimal:
            return int((Decimal(self.amount) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return self.amount

    def display_amount(self) -> Decimal:
        """Human readable amount, used in log entries."""
        return Decimal(self.amount) / 100

    @classmethod
    def from_vendor_amount(cls, amount, currency: str) -> "Money":
        """Create Money from an amount reported by Razorpay."""
        amount = int(amount or 0)
        if is_zero_decimal(currency):
            amount *= 100
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str = "INR") -> "Money":
        """Create a zero Money object."""
        return cls(amount=0, currency=currency)
