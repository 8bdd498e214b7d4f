"""
modelit Test Configuration and Fixtures

Shared models used across unit and integration tests.
"""

import pytest

from modelit.engine import EngineConfig, EvaluationEngine
from modelit.models import Model, Variable, VariableType


@pytest.fixture
def engine():
    """Engine with default configuration."""
    return EvaluationEngine(EngineConfig())


@pytest.fixture
def income_model():
    """REVENUE/COGS/SGA/EBITDA income statement over three periods."""
    return Model(
        name="income",
        variables=[
            Variable("REVENUE", type=VariableType.PARAMETER, values=[100, 110, 121]),
            Variable("COGS", formula="REVENUE * 0.3"),
            Variable("SGA", type=VariableType.PARAMETER, values=[25, 25, 25]),
            Variable("EBITDA", formula="REVENUE - COGS - SGA"),
        ],
    )


@pytest.fixture
def cashflow_model():
    """Cash balance rolled forward from free cash flow."""
    return Model(
        name="cashflow",
        variables=[
            Variable("FCF", type=VariableType.PARAMETER, values=[20, 25, 30]),
            Variable("CASH", formula="CASH[t-1] + FCF[t]", values=[100]),
        ],
    )


@pytest.fixture
def circular_model():
    """Two variables defined in terms of each other without a lag."""
    return Model(
        name="circular",
        variables=[
            Variable("A", formula="B + 1"),
            Variable("B", formula="A + 1"),
        ],
    )


@pytest.fixture
def pricing_model():
    """REVENUE = PRICE * QUANTITY with both inputs as parameters."""
    return Model(
        name="pricing",
        variables=[
            Variable("PRICE", type=VariableType.PARAMETER, values=[10]),
            Variable("QUANTITY", type=VariableType.PARAMETER, values=[100]),
            Variable("REVENUE", formula="PRICE * QUANTITY"),
        ],
    )
