"""Prediction, calibration, backtest and monitoring services.

- ``team_analytics``        : per-team snapshot from stats and recent games
- ``schedule_strength``     : opponent-quality (SOS) adjustment
- ``opponent_tiers``        : elite/average/weak weighted efficiencies
- ``matchup_predictor``     : win probability, score, spread, value bets
- ``recalibration``         : Platt scaling of raw probabilities
- ``validation``            : prediction-vs-result metrics
- ``coefficient_optimizer`` : offline grid search over historical games
- ``odds_monitor``          : line-movement sweep and re-prediction
"""
