"""Formula sets for the Custom Financial Model core."""

from parsenfill.custom_model.formulas.direct_cap import (
    build_direct_cap_registry,
    direct_cap_formulas,
    get_direct_cap_formula,
    implied_cap_rate,
)

__all__ = [
    "build_direct_cap_registry",
    "direct_cap_formulas",
    "get_direct_cap_formula",
    "implied_cap_rate",
]
