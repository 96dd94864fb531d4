import calendar
from datetime import date, datetime


class SystemClock:
    """
    now() is naive UTC (matches the DateTime columns).
    today() is the server-local calendar day used to partition usage counters.
    """

    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return date.today()


def unix_time(moment: datetime) -> int:
    # naive datetimes are UTC throughout this codebase
    return calendar.timegm(moment.utctimetuple())
