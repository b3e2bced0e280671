"""Sequential production-cost simulation engine.

Chains optimization problems (e.g. day-ahead unit commitment followed by
real-time economic dispatch) over rolling time windows, passes solved
values between them and persists results for later querying.
"""

__version__ = "0.1.0"
