"""Ambassador referral orders: checkout, settlement and leaderboard updates."""

__version__ = "0.1.0"
