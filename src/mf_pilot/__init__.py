"""
Mutual Fund Portfolio Metrics Engine (mf-pilot)

Turns per-transaction purchase records, a current NAV and benchmark index
history into fund metrics (invested amount, value, P&L, XIRR, CAGR, rolling
returns, capital-gains tax estimate) and a BUY/HOLD/EXIT evaluation against
a benchmark. Portfolio data comes from an injectable data source with an
explicit, labelled fallback.
"""

__version__ = "0.1.0"
__author__ = "MF Pilot Team"
