"""
Bullet Bond Engine

Calculation core for American (bullet) bonds with total/partial grace periods:
- config: precision + solver settings (explicit, no global decimal context)
- utils: fixed-point rate arithmetic + payment date helpers
- bonds: bond terms, issuer bond record, amortization method
- cashflows: period-by-period schedule builder
- valuation: TCEA, max price, Macaulay duration, convexity
- solver: TREA/IRR (closed form, bisection, brentq)
- calculator: issuer/investor orchestration
- scenarios: flat rate shocks + price/yield tables
- portfolio: DataFrame listing of bonds, QC flags + batch valuation

Persistence and API layers should import from this package.
"""
