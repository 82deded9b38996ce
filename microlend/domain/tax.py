"""Tax on fee components"""

from decimal import Decimal
from typing import Mapping, Optional

from microlend.domain.models import FeeComponent, TaxConfig
from microlend.domain.money import ZERO, money, percent_of


def apply_tax(components: Mapping[FeeComponent, Decimal], tax_config: Optional[TaxConfig]) -> Decimal:
    """
    Tax owed on the components the active tax config applies to.

    Returns only the additional tax amount, zero without an active config.
    """
    if tax_config is None or not tax_config.applied_to:
        return ZERO

    taxable = sum(
        (components.get(component, ZERO) for component in tax_config.applied_to),
        Decimal("0"),
    )
    return money(percent_of(taxable, tax_config.rate))
