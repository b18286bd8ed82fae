"""KPI calculator for margins, liquidity and working-capital days."""

from typing import Any

import numpy as np

from projection_engine.core.convergence_engine import RunResult
from projection_engine.utils.financial_utils import DAYS_PER_YEAR


class KPICalculator:
    """
    Calculates per-year ratios from solved statements.

    All series are aligned to ``RunResult.years``. A year without a snapshot
    (failed year) is NaN in every series.
    """

    def calculate(self, run: RunResult) -> dict[str, Any]:
        """
        Calculate all KPIs.

        Args:
            run: Output of the convergence engine.

        Returns:
            Dictionary with ``years`` and the ratio series
            ``ebitda_margin``, ``net_margin``, ``current_ratio`` and
            ``days_in_working_capital``.
        """
        revenue = run.series("revenue")
        ebitda = run.series("ebitda")
        net_result = run.series("net_result")
        current_assets = run.series("total_current_assets")
        current_liabilities = run.series("total_current_liabilities")
        working_capital = run.series("working_capital")

        return {
            "years": np.array(run.years, dtype=int),
            "ebitda_margin": self._calculate_margin(ebitda, revenue),
            "net_margin": self._calculate_margin(net_result, revenue),
            "current_ratio": self._calculate_current_ratio(
                current_assets, current_liabilities
            ),
            "days_in_working_capital": self._calculate_days_in_working_capital(
                working_capital, revenue
            ),
        }

    @staticmethod
    def _calculate_margin(numerator: np.ndarray, revenue: np.ndarray) -> np.ndarray:
        """
        Margin in percent of revenue.

        Years with zero revenue have a margin of 0.
        """
        with np.errstate(divide="ignore", invalid="ignore"):
            margin = np.where(revenue != 0, numerator / revenue * 100.0, 0.0)
        return np.where(np.isnan(revenue), np.nan, margin)

    @staticmethod
    def _calculate_current_ratio(
        current_assets: np.ndarray,
        current_liabilities: np.ndarray,
    ) -> np.ndarray:
        """
        Current Ratio = Total Current Assets / Total Current Liabilities

        Returns np.inf for years without current liabilities.
        """
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(
                current_liabilities != 0,
                current_assets / current_liabilities,
                np.inf,
            )
        return np.where(np.isnan(current_liabilities), np.nan, ratio)

    @staticmethod
    def _calculate_days_in_working_capital(
        working_capital: np.ndarray,
        revenue: np.ndarray,
    ) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            days = np.where(
                revenue != 0, working_capital / revenue * DAYS_PER_YEAR, 0.0
            )
        return np.where(np.isnan(revenue), np.nan, days)
