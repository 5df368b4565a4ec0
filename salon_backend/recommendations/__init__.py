"""
Salon recommendation engine.

Responsibilities:
- Derive a user's preferences from their accepted booking history.
- Score catalog salons on service, price, proximity and rating fit.
- Boost subscribed salons that still have weekly match quota.
- Keep the weekly match ledger and explain every recommendation.
"""
