"""Sales tax rate lookup by client country and province/state."""
from decimal import Decimal
from typing import List, NamedTuple, Optional

from lumenr.utils.number_format import parse_percentage


class TaxRate(NamedTuple):
    country: str
    province: Optional[str]
    total_rate: Decimal
    description: str
    gst: Optional[Decimal] = None
    pst: Optional[Decimal] = None
    hst: Optional[Decimal] = None
    vat: Optional[Decimal] = None

    def to_dict(self):
        return {
            'country': self.country,
            'province': self.province,
            'totalRate': str(self.total_rate),
            'description': self.description,
            'gst': str(self.gst) if self.gst is not None else None,
            'pst': str(self.pst) if self.pst is not None else None,
            'hst': str(self.hst) if self.hst is not None else None,
            'vat': str(self.vat) if self.vat is not None else None,
        }


D = Decimal

TAX_RATES: List[TaxRate] = [
    TaxRate('Canada', 'Ontario', D('13'), 'HST 13%', hst=D('13')),
    TaxRate('Canada', 'Quebec', D('14.975'), 'GST 5% + QST 9.975%', gst=D('5'), pst=D('9.975')),
    TaxRate('Canada', 'British Columbia', D('12'), 'GST 5% + PST 7%', gst=D('5'), pst=D('7')),
    TaxRate('Canada', 'Alberta', D('5'), 'GST 5%', gst=D('5')),
    TaxRate('Canada', 'Saskatchewan', D('11'), 'GST 5% + PST 6%', gst=D('5'), pst=D('6')),
    TaxRate('Canada', 'Manitoba', D('12'), 'GST 5% + PST 7%', gst=D('5'), pst=D('7')),
    TaxRate('Canada', 'Nova Scotia', D('15'), 'HST 15%', hst=D('15')),
    TaxRate('Canada', 'New Brunswick', D('15'), 'HST 15%', hst=D('15')),
    TaxRate('Canada', 'Newfoundland and Labrador', D('15'), 'HST 15%', hst=D('15')),
    TaxRate('Canada', 'Prince Edward Island', D('15'), 'HST 15%', hst=D('15')),
    TaxRate('Canada', 'Yukon', D('5'), 'GST 5%', gst=D('5')),
    TaxRate('Canada', 'Northwest Territories', D('5'), 'GST 5%', gst=D('5')),
    TaxRate('Canada', 'Nunavut', D('5'), 'GST 5%', gst=D('5')),

    TaxRate('United States', 'California', D('7.25'), 'Sales Tax 7.25%'),
    TaxRate('United States', 'New York', D('4'), 'Sales Tax 4%'),
    TaxRate('United States', 'Texas', D('6.25'), 'Sales Tax 6.25%'),
    TaxRate('United States', 'Florida', D('6'), 'Sales Tax 6%'),
    TaxRate('United States', 'Washington', D('6.5'), 'Sales Tax 6.5%'),
    TaxRate('United States', 'Alaska', D('0'), 'No State Sales Tax'),
    TaxRate('United States', 'Delaware', D('0'), 'No State Sales Tax'),
    TaxRate('United States', 'Montana', D('0'), 'No State Sales Tax'),
    TaxRate('United States', 'New Hampshire', D('0'), 'No State Sales Tax'),
    TaxRate('United States', 'Oregon', D('0'), 'No State Sales Tax'),

    TaxRate('United Kingdom', None, D('20'), 'VAT 20%', vat=D('20')),
    TaxRate('Germany', None, D('19'), 'VAT 19%', vat=D('19')),
    TaxRate('France', None, D('20'), 'VAT 20%', vat=D('20')),
    TaxRate('Australia', None, D('10'), 'GST 10%', gst=D('10')),
    TaxRate('New Zealand', None, D('15'), 'GST 15%', gst=D('15')),
    TaxRate('Ireland', None, D('23'), 'VAT 23%', vat=D('23')),
    TaxRate('Spain', None, D('21'), 'VAT 21%', vat=D('21')),
    TaxRate('Italy', None, D('22'), 'VAT 22%', vat=D('22')),
    TaxRate('Netherlands', None, D('21'), 'VAT 21%', vat=D('21')),
    TaxRate('Belgium', None, D('21'), 'VAT 21%', vat=D('21')),
    TaxRate('Sweden', None, D('25'), 'VAT 25%', vat=D('25')),
    TaxRate('Norway', None, D('25'), 'VAT 25%', vat=D('25')),
    TaxRate('Denmark', None, D('25'), 'VAT 25%', vat=D('25')),
    TaxRate('Finland', None, D('24'), 'VAT 24%', vat=D('24')),
]


def find_tax_rate(country: Optional[str], province: Optional[str] = None) -> Optional[TaxRate]:
    """
    Find the table entry for a location.

    Matching is case-insensitive. A province/state match wins; otherwise the
    country-level entry (one without a province) is used.
    """
    if not country or not country.strip():
        return None

    country_key = country.strip().lower()
    province_key = (province or '').strip().lower()

    if province_key:
        for rate in TAX_RATES:
            if rate.country.lower() == country_key and (rate.province or '').lower() == province_key:
                return rate

    for rate in TAX_RATES:
        if rate.country.lower() == country_key and rate.province is None:
            return rate
    return None


def calculate_tax_rate(country: Optional[str], province: Optional[str] = None) -> Optional[Decimal]:
    """Percentage for a location, or None when no rate is known."""
    rate = find_tax_rate(country, province)
    return rate.total_rate if rate else None


def get_tax_description(country: Optional[str], province: Optional[str] = None) -> str:
    rate = find_tax_rate(country, province)
    return rate.description if rate else ''


def get_all_tax_rates() -> List[TaxRate]:
    return list(TAX_RATES)


def resolve_client_tax_rate(client) -> Decimal:
    """
    Tax percentage to apply for a client.

    Clients without auto-calculated tax are not taxed. Otherwise the
    client's own rate wins over the location table; an unknown location
    means no tax.
    """
    if client is None or not client.auto_calculate_tax:
        return Decimal('0')
    if client.tax_rate is not None:
        return parse_percentage(client.tax_rate)
    return calculate_tax_rate(client.country, client.province) or Decimal('0')
