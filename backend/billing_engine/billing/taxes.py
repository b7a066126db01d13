"""Tax rates by user country (VAT / IVA and equivalents)."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from billing_engine.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxInfo:
    """Rate and local name of the tax applied for a country."""

    country: str | None
    rate: Decimal
    name: str


# Keys are upper-cased ISO codes plus common English/Spanish names.
TAX_RATES: dict[str, Decimal] = {}

_RATE_TABLE: list[tuple[str, tuple[str, ...]]] = [
    ("21.00", ("ES", "ESPAÑA", "SPAIN")),
    ("19.00", ("DE", "GERMANY", "ALEMANIA")),
    ("20.00", ("FR", "FRANCE", "FRANCIA")),
    ("22.00", ("IT", "ITALY", "ITALIA")),
    ("23.00", ("PT", "PORTUGAL")),
    ("20.00", ("GB", "UK", "UNITED KINGDOM", "REINO UNIDO")),
    ("21.00", ("NL", "NETHERLANDS", "HOLANDA", "PAÍSES BAJOS")),
    ("21.00", ("BE", "BELGIUM", "BÉLGICA")),
    ("20.00", ("AT", "AUSTRIA")),
    ("25.00", ("SE", "SWEDEN", "SUECIA")),
    ("25.00", ("DK", "DENMARK", "DINAMARCA")),
    ("23.00", ("PL", "POLAND", "POLONIA")),
    ("23.00", ("IE", "IRELAND", "IRLANDA")),
    ("7.70", ("CH", "SWITZERLAND", "SUIZA")),
    ("16.00", ("MX", "MEXICO", "MÉXICO")),
    ("21.00", ("AR", "ARGENTINA")),
    ("19.00", ("CL", "CHILE")),
    ("19.00", ("CO", "COLOMBIA")),
    ("18.00", ("PE", "PERU", "PERÚ")),
    ("17.00", ("BR", "BRAZIL", "BRASIL")),
    ("0.00", ("US", "USA", "UNITED STATES", "ESTADOS UNIDOS")),
    ("5.00", ("CA", "CANADA", "CANADÁ")),
]

for _rate, _names in _RATE_TABLE:
    for _name in _names:
        TAX_RATES[_name] = Decimal(_rate)

_TAX_NAMES: dict[str, str] = {
    "US": "Sales Tax",
    "CA": "GST",
    "GB": "VAT",
    "BR": "ICMS",
}
_ALIASES: dict[str, str] = {
    name: names[0] for _, names in _RATE_TABLE for name in names
}


def _normalize(country: str | None) -> str | None:
    if country is None or not country.strip():
        return None
    return country.strip().upper()


def get_tax_rate(country: str | None) -> Decimal:
    """Percentage applied to invoices for ``country``; unknown -> default rate."""
    key = _normalize(country)
    if key is None:
        key = _normalize(settings.default_country)
    rate = TAX_RATES.get(key) if key else None
    if rate is None:
        logger.debug("No tax rate configured for %r, using default %s%%", country, settings.default_tax_rate)
        return settings.default_tax_rate
    return rate


def get_tax_info(country: str | None) -> TaxInfo:
    key = _normalize(country)
    iso = _ALIASES.get(key, key) if key else None
    return TaxInfo(country=country, rate=get_tax_rate(country), name=_TAX_NAMES.get(iso or "", "IVA"))


def has_configured_rate(country: str | None) -> bool:
    key = _normalize(country)
    return key is not None and key in TAX_RATES
