"""Сетка календаря: окна дат для дня, недели и месяца.

Все даты наивные (без времени и часового пояса). Преобразования
строк ``YYYY-MM-DD`` выполняются только здесь.
"""
import calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple, Union

DateLike = Union[date, str]

MONTH_NAMES = [
    "", "Январь", "Февраль", "Март", "Апрель", "Май", "Июнь",
    "Июль", "Август", "Сентябрь", "Октябрь", "Ноябрь", "Декабрь",
]
WEEKDAY_HEADERS = ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]


class Period(str, Enum):
    """Режим отображения календаря"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def parse_date(value: DateLike) -> date:
    """Строка YYYY-MM-DD (или date/datetime) -> date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def to_date_string(value: DateLike) -> str:
    """date -> YYYY-MM-DD"""
    return parse_date(value).isoformat()


def parse_month(value: DateLike) -> date:
    """YYYY-MM (или любая дата месяца) -> первое число месяца"""
    if isinstance(value, str) and len(value.strip()) == 7:
        year, month = value.strip().split("-")
        return date(int(year), int(month), 1)
    return month_start(parse_date(value))


def week_start(day: date) -> date:
    """Понедельник недели, содержащей дату"""
    return day - timedelta(days=day.weekday())


def week_end(day: date) -> date:
    """Воскресенье недели, содержащей дату"""
    return week_start(day) + timedelta(days=6)


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def add_months(day: date, months: int) -> date:
    """Сдвиг на месяцы; число обрезается по длине целевого месяца"""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def iter_dates(first: date, last: date) -> Iterator[date]:
    """Все даты от first до last включительно"""
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def month_dates(month: DateLike) -> List[date]:
    """Все дни месяца (без дополнения до недель)"""
    first = parse_month(month)
    return list(iter_dates(first, month_end(first)))


def normalize_anchor(period: Period, anchor: date) -> date:
    """Привести опорную дату к началу периода"""
    if period is Period.WEEK:
        return week_start(anchor)
    if period is Period.MONTH:
        return month_start(anchor)
    return anchor


class CalendarGrid:
    """Окно календаря с навигацией.

    Для месяца сетка прямоугольная: от понедельника недели с 1-м числом
    до воскресенья недели с последним днём месяца.
    """

    def __init__(
        self,
        period: Period = Period.MONTH,
        anchor: Optional[DateLike] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.clock = clock
        self.period = Period(period)
        start = parse_date(anchor) if anchor is not None else self.today()
        self.anchor = normalize_anchor(self.period, start)

    def today(self) -> date:
        return self.clock().date()

    def dates(self) -> List[date]:
        """Упорядоченный список дат для отрисовки"""
        first, last = self.window()
        return list(iter_dates(first, last))

    def date_strings(self) -> List[str]:
        return [to_date_string(d) for d in self.dates()]

    def window(self) -> Tuple[date, date]:
        """Первая и последняя дата окна (границы запроса данных)"""
        if self.period is Period.DAY:
            return self.anchor, self.anchor
        if self.period is Period.WEEK:
            return self.anchor, self.anchor + timedelta(days=6)
        return week_start(self.anchor), week_end(month_end(self.anchor))

    def go_prev(self):
        self.anchor = self._shift(-1)

    def go_next(self):
        self.anchor = self._shift(1)

    def go_to_current(self):
        self.anchor = normalize_anchor(self.period, self.today())

    def set_period(self, period: Period):
        """Сменить режим; опорная дата приводится к началу нового периода"""
        self.period = Period(period)
        self.anchor = normalize_anchor(self.period, self.anchor)

    def _shift(self, step: int) -> date:
        if self.period is Period.DAY:
            return self.anchor + timedelta(days=step)
        if self.period is Period.WEEK:
            return self.anchor + timedelta(weeks=step)
        return add_months(self.anchor, step)

    def title(self) -> str:
        """Заголовок окна для клавиатуры"""
        if self.period is Period.DAY:
            return self.anchor.strftime("%d.%m.%Y")
        if self.period is Period.WEEK:
            first, last = self.window()
            return f"{first.strftime('%d.%m')} - {last.strftime('%d.%m.%Y')}"
        return f"{MONTH_NAMES[self.anchor.month]} {self.anchor.year}"


def editable_floor(now: datetime, hours: int = 24) -> date:
    """Самая ранняя дата, которую можно редактировать (сейчас + N часов, по дням)"""
    return (now + timedelta(hours=hours)).date()


def is_editable(day: DateLike, floor: date) -> bool:
    return parse_date(day) >= floor
