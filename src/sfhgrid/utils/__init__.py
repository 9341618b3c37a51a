from sfhgrid.utils.integrate import (
    IntegrationHint,
    integrate,
    integrate_hinted,
)

__all__ = ["IntegrationHint", "integrate", "integrate_hinted"]
