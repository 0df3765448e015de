"""
Money arithmetic in the lowest currency denomination.

Amounts are integers (e.g. cents) paired with an ISO 4217 currency code,
so fee sums never pass through floating point.
"""

from dataclasses import dataclass
from decimal import Decimal

# code -> (symbol, name, minor unit exponent)
_CURRENCIES: dict[str, tuple[str, str, int]] = {
    "AUD": ("$", "Australian Dollar", 2),
    "BRL": ("R$", "Brazilian Real", 2),
    "CAD": ("$", "Canadian Dollar", 2),
    "CHF": ("CHF", "Swiss Franc", 2),
    "CNY": ("¥", "Chinese Renminbi Yuan", 2),
    "DKK": ("kr.", "Danish Krone", 2),
    "EUR": ("€", "Euro", 2),
    "GBP": ("£", "British Pound", 2),
    "INR": ("₹", "Indian Rupee", 2),
    "JPY": ("¥", "Japanese Yen", 0),
    "KRW": ("₩", "South Korean Won", 0),
    "KWD": ("KD", "Kuwaiti Dinar", 3),
    "MXN": ("$", "Mexican Peso", 2),
    "NOK": ("kr", "Norwegian Krone", 2),
    "NZD": ("$", "New Zealand Dollar", 2),
    "PLN": ("zł", "Polish Złoty", 2),
    "SEK": ("kr", "Swedish Krona", 2),
    "USD": ("$", "United States Dollar", 2),
}


@dataclass(frozen=True)
class Money:
    """An integer amount in the lowest denomination of ``currency_code``."""

    cents: int
    currency_code: str

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.cents + other.cents, self.currency_code)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.cents - other.cents, self.currency_code)

    def __neg__(self) -> "Money":
        return Money(-self.cents, self.currency_code)

    def is_zero(self) -> bool:
        return self.cents == 0

    @property
    def currency_name(self) -> str:
        return _CURRENCIES.get(self.currency_code, (self.currency_code, self.currency_code, 2))[1]

    def format(self) -> str:
        """Render the amount with its symbol, e.g. ``€10.00``."""
        symbol, _, exponent = _CURRENCIES.get(
            self.currency_code, (self.currency_code, self.currency_code, 2)
        )
        value = Decimal(abs(self.cents)).scaleb(-exponent)
        sign = "-" if self.cents < 0 else ""
        return f"{sign}{symbol}{value:,.{exponent}f}"

    def human_readable(self) -> str:
        """Amount plus currency name, as shown to administrators."""
        return f"{self.format()} ({self.currency_name})"

    def _check_currency(self, other: "Money") -> None:
        if other.currency_code != self.currency_code:
            raise ValueError(
                f"Currency mismatch: {self.currency_code} vs {other.currency_code}"
            )
