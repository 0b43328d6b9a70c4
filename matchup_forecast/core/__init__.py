"""Core mathematics and configuration for the forecast engine.

Pure building blocks shared by every service:

- ``odds_math``    : odds conversion, Shin vig removal, probability transforms
- ``sport_config`` : per-sport league constants
- ``team_matcher`` : the single team-identity matcher for game results
- ``sim_interface``: ABC and DTO for an optional game simulator

Nothing in this package imports from ``matchup_forecast.services``.
"""
