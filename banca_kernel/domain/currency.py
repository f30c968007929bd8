"""Currency -- ISO 4217 subset and minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from banca_kernel.db.types import minor_unit


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        return minor_unit(self.decimal_places)


class CurrencyRegistry:
    """Currencies the bank can hold accounts in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "CRC": CurrencyInfo("CRC", 2, "Costa Rican Colon"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "PAB": CurrencyInfo("PAB", 2, "Panamanian Balboa"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
    }

    @classmethod
    def get(cls, code: str) -> CurrencyInfo | None:
        return cls._CURRENCIES.get(code.upper())

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return isinstance(code, str) and code.upper() in cls._CURRENCIES

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Decimal places for a currency; 2 for unknown codes."""
        info = cls.get(code)
        return info.decimal_places if info else 2
