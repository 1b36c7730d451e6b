from datetime import datetime, timedelta


class SystemClock:
    def now(self):
        return datetime.utcnow()

    def today(self):
        return self.now().date()


class FixedClock(SystemClock):
    """Clock pinned to a given instant. Used by operator simulations and tests."""

    def __init__(self, instant):
        if not isinstance(instant, datetime):
            instant = datetime(instant.year, instant.month, instant.day)
        self.instant = instant

    def now(self):
        return self.instant

    def advance(self, days=0, **kwargs):
        self.instant = self.instant + timedelta(days=days, **kwargs)
        return self.instant


def get_clock():
    from flask import current_app
    return current_app.extensions.get('lifecycle_clock') or SystemClock()
