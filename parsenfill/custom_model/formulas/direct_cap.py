"""
Direct Capitalization formula definitions.

Core formulas:
- Gross Potential Income = Sum of all revenue items
- Effective Gross Income = GPI - Vacancy Allowance
- Net Operating Income = EGI - Total Operating Expenses
- Property Value = NOI / Cap Rate

Dependency levels:
 1. grossPotentialIncome, totalOperatingExpenses (no deps)
 2. vacancyAllowance (GPI)
 3. effectiveGrossIncome (GPI, vacancy)
 4. expenseRatio, netOperatingIncome (expenses, EGI)
 5. noiMargin, expensePerSqFt, noiPerSqFt
 6. propertyValue (NOI) -> pricePerSqFt, grossRentMultiplier
 7. impliedCapRate (NOI, asking price)
"""

from decimal import Decimal
from typing import Dict, List, Optional

from parsenfill.custom_model.models import (
    FormulaDefinition,
    OperandRef,
    Operation,
    OutputFormat,
    Severity,
    ValidationRule,
)
from parsenfill.custom_model.registry import FormulaRegistry
from parsenfill.exceptions import FormulaNotFoundError

DEFAULT_VACANCY_RATE = Decimal("0.05")
HUNDRED = Decimal(100)

IMPLIED_CAP_RATE_FUNCTION = "implied_cap_rate"


def _calc(key: str, label: str, **kwargs) -> OperandRef:
    return OperandRef(key=key, label=label, ref=f"calculations.{key}", **kwargs)


def implied_cap_rate(values: Dict[str, Optional[Decimal]]) -> Optional[Decimal]:
    """NOI / asking price; None unless both are present and the price is positive."""
    noi = values.get("netOperatingIncome")
    price = values.get("askingPrice")
    if noi is None or price is None or price <= 0:
        return None
    return noi / price


def direct_cap_formulas(default_vacancy_rate: Decimal = DEFAULT_VACANCY_RATE) -> List[FormulaDefinition]:
    """Build the Direct Capitalization formula definitions."""
    return [
        # ---------------------------------------------------------------------
        # Revenue
        # ---------------------------------------------------------------------
        FormulaDefinition(
            id="grossPotentialIncome",
            name="Gross Potential Income",
            human_readable="Sum of all Revenue Items",
            expression="SUM(userInput.revenueItems.amount)",
            operation=Operation.SUM,
            operands=[
                OperandRef(
                    key="totalRevenue",
                    label="Revenue Items",
                    ref="userInput.revenueItems",
                    description="All revenue line items from rent roll and other income",
                ),
            ],
            output_format=OutputFormat.CURRENCY,
            category="revenue",
            description="Total potential income if property was 100% occupied at market rates",
        ),
        FormulaDefinition(
            id="vacancyAllowance",
            name="Vacancy Allowance",
            human_readable="Gross Potential Income × Vacancy Rate",
            expression="grossPotentialIncome * vacancyRate",
            operation=Operation.MULTIPLY,
            operands=[
                _calc("grossPotentialIncome", "Gross Potential Income"),
                OperandRef(
                    key="vacancyRate",
                    label="Vacancy Rate",
                    ref="userInput.valuationInputs.vacancyRate",
                    description="Expected vacancy as decimal (e.g., 0.05 for 5%)",
                    default=default_vacancy_rate,
                ),
            ],
            dependencies=["grossPotentialIncome"],
            output_format=OutputFormat.CURRENCY,
            category="revenue",
            description="Estimated income loss due to vacancy and credit loss",
        ),
        FormulaDefinition(
            id="effectiveGrossIncome",
            name="Effective Gross Income",
            human_readable="Gross Potential Income - Vacancy Allowance",
            expression="grossPotentialIncome - vacancyAllowance",
            operation=Operation.SUBTRACT,
            operands=[
                _calc("grossPotentialIncome", "GPI"),
                _calc("vacancyAllowance", "Vacancy Allowance", default=Decimal(0)),
            ],
            dependencies=["grossPotentialIncome", "vacancyAllowance"],
            output_format=OutputFormat.CURRENCY,
            category="revenue",
            description="Actual expected income after accounting for vacancy",
        ),
        # ---------------------------------------------------------------------
        # Expenses
        # ---------------------------------------------------------------------
        FormulaDefinition(
            id="totalOperatingExpenses",
            name="Total Operating Expenses",
            human_readable="Sum of all Expense Items",
            expression="SUM(userInput.expenseItems.amount)",
            operation=Operation.SUM,
            operands=[
                OperandRef(
                    key="totalExpenses",
                    label="Expense Items",
                    ref="userInput.expenseItems",
                    description="All operating expense line items",
                ),
            ],
            output_format=OutputFormat.CURRENCY,
            category="expenses",
            description="Total annual operating expenses for the property",
        ),
        FormulaDefinition(
            id="expenseRatio",
            name="Expense Ratio",
            human_readable="Total Operating Expenses / Effective Gross Income × 100",
            expression="(totalOperatingExpenses / effectiveGrossIncome) * 100",
            operation=Operation.DIVIDE,
            operands=[
                _calc("totalOperatingExpenses", "Total Expenses"),
                _calc("effectiveGrossIncome", "EGI", positive=True),
            ],
            dependencies=["totalOperatingExpenses", "effectiveGrossIncome"],
            scale=HUNDRED,
            output_format=OutputFormat.PERCENTAGE,
            rules=[
                ValidationRule(
                    severity=Severity.ERROR,
                    message="Expense ratio over 100% - expenses exceed income",
                    max_value=HUNDRED,
                ),
                ValidationRule(
                    severity=Severity.WARNING,
                    message="Expense ratio above 70% may indicate inefficient operations",
                    max_value=Decimal(70),
                ),
            ],
            category="expenses",
            description="Operating expenses as a percentage of effective gross income",
        ),
        # ---------------------------------------------------------------------
        # Income
        # ---------------------------------------------------------------------
        FormulaDefinition(
            id="netOperatingIncome",
            name="Net Operating Income",
            human_readable="Effective Gross Income - Total Operating Expenses",
            expression="effectiveGrossIncome - totalOperatingExpenses",
            operation=Operation.SUBTRACT,
            operands=[
                _calc("effectiveGrossIncome", "Effective Gross Income"),
                _calc("totalOperatingExpenses", "Total Operating Expenses", default=Decimal(0)),
            ],
            dependencies=["effectiveGrossIncome", "totalOperatingExpenses"],
            output_format=OutputFormat.CURRENCY,
            rules=[
                ValidationRule(
                    severity=Severity.WARNING,
                    message="NOI is negative - expenses exceed income",
                    min_value=Decimal(0),
                ),
            ],
            category="income",
            description="Income remaining after operating expenses, before debt service and income taxes",
        ),
        FormulaDefinition(
            id="noiMargin",
            name="NOI Margin",
            human_readable="Net Operating Income / Effective Gross Income × 100",
            expression="(netOperatingIncome / effectiveGrossIncome) * 100",
            operation=Operation.DIVIDE,
            operands=[
                _calc("netOperatingIncome", "NOI"),
                _calc("effectiveGrossIncome", "EGI", positive=True),
            ],
            dependencies=["netOperatingIncome", "effectiveGrossIncome"],
            scale=HUNDRED,
            output_format=OutputFormat.PERCENTAGE,
            category="income",
            description="NOI as a percentage of effective gross income",
        ),
        FormulaDefinition(
            id="expensePerSqFt",
            name="Expenses per Square Foot",
            human_readable="Total Operating Expenses / Total Square Feet",
            expression="totalOperatingExpenses / squareFootage",
            operation=Operation.DIVIDE,
            operands=[
                _calc("totalOperatingExpenses", "Total Operating Expenses"),
                OperandRef(
                    key="squareFootage",
                    label="Square Footage",
                    ref="userInput.propertyInfo.squareFootage",
                    positive=True,
                ),
            ],
            dependencies=["totalOperatingExpenses"],
            output_format=OutputFormat.CURRENCY,
            category="expenses",
            description="Operating expenses per square foot",
        ),
        FormulaDefinition(
            id="noiPerSqFt",
            name="NOI per Square Foot",
            human_readable="Net Operating Income / Total Square Feet",
            expression="netOperatingIncome / squareFootage",
            operation=Operation.DIVIDE,
            operands=[
                _calc("netOperatingIncome", "Net Operating Income"),
                OperandRef(
                    key="squareFootage",
                    label="Square Footage",
                    ref="userInput.propertyInfo.squareFootage",
                    positive=True,
                ),
            ],
            dependencies=["netOperatingIncome"],
            output_format=OutputFormat.CURRENCY,
            category="income",
            description="Net operating income per square foot",
        ),
        # ---------------------------------------------------------------------
        # Valuation
        # ---------------------------------------------------------------------
        FormulaDefinition(
            id="propertyValue",
            name="Property Value",
            human_readable="Net Operating Income / Cap Rate",
            expression="netOperatingIncome / capRate",
            operation=Operation.DIVIDE,
            operands=[
                _calc("netOperatingIncome", "Net Operating Income"),
                OperandRef(
                    key="capRate",
                    label="Capitalization Rate",
                    ref="userInput.valuationInputs.capRate",
                    description="Market cap rate as decimal (e.g., 0.065 for 6.5%)",
                    positive=True,
                ),
            ],
            dependencies=["netOperatingIncome"],
            output_format=OutputFormat.CURRENCY,
            rules=[
                ValidationRule(
                    severity=Severity.ERROR,
                    message="Property value cannot be negative",
                    min_value=Decimal(0),
                ),
            ],
            category="valuation",
            description="Indicated property value using income capitalization approach",
        ),
        FormulaDefinition(
            id="pricePerSqFt",
            name="Price per Square Foot",
            human_readable="Property Value / Total Square Feet",
            expression="propertyValue / squareFootage",
            operation=Operation.DIVIDE,
            operands=[
                _calc("propertyValue", "Property Value"),
                OperandRef(
                    key="squareFootage",
                    label="Square Footage",
                    ref="userInput.propertyInfo.squareFootage",
                    positive=True,
                ),
            ],
            dependencies=["propertyValue"],
            output_format=OutputFormat.CURRENCY,
            category="valuation",
            description="Property value per square foot",
        ),
        FormulaDefinition(
            id="grossRentMultiplier",
            name="Gross Rent Multiplier",
            human_readable="Property Value / Gross Potential Income",
            expression="propertyValue / grossPotentialIncome",
            operation=Operation.DIVIDE,
            operands=[
                _calc("propertyValue", "Property Value"),
                _calc("grossPotentialIncome", "Gross Potential Income", positive=True),
            ],
            dependencies=["propertyValue", "grossPotentialIncome"],
            output_format=OutputFormat.RATIO,
            rules=[
                ValidationRule(
                    severity=Severity.WARNING,
                    message="GRM outside typical range of 1-30x",
                    min_value=Decimal(1),
                    max_value=Decimal(30),
                ),
            ],
            category="valuation",
            description="Ratio of property value to gross income (quick valuation metric)",
        ),
        FormulaDefinition(
            id="impliedCapRate",
            name="Implied Cap Rate",
            human_readable="Net Operating Income / Asking Price",
            expression="implied_cap_rate(netOperatingIncome, askingPrice)",
            operation=Operation.CUSTOM,
            function=IMPLIED_CAP_RATE_FUNCTION,
            operands=[
                _calc("netOperatingIncome", "Net Operating Income"),
                OperandRef(
                    key="askingPrice",
                    label="Asking Price",
                    ref="userInput.valuationInputs.askingPrice",
                ),
            ],
            dependencies=["netOperatingIncome"],
            output_format=OutputFormat.RATIO,
            rules=[
                ValidationRule(
                    severity=Severity.WARNING,
                    message="Implied cap rate outside 0-100%",
                    min_value=Decimal(0),
                    max_value=Decimal(1),
                ),
            ],
            category="valuation",
            description="Cap rate implied by the asking price",
        ),
    ]


def build_direct_cap_registry(default_vacancy_rate: Decimal = DEFAULT_VACANCY_RATE) -> FormulaRegistry:
    """Create a fresh registry holding the Direct Capitalization formulas."""
    registry = FormulaRegistry()
    registry.register_function(IMPLIED_CAP_RATE_FUNCTION, implied_cap_rate)
    registry.register(direct_cap_formulas(default_vacancy_rate))
    return registry


def get_direct_cap_formula(formula_id: str) -> FormulaDefinition:
    """Look up a single Direct Capitalization formula by id."""
    for definition in direct_cap_formulas():
        if definition.id == formula_id:
            return definition
    raise FormulaNotFoundError(formula_id)
