from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable

from tasknote.domain.entities import DayStats, Task, TaskStat

# Calendar weeks start on Monday.
WEEK_START = 0


def day_range(day: date) -> tuple[datetime, datetime]:
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def month_grid_range(month: date) -> tuple[date, date]:
    first = month.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    last = next_month - timedelta(days=1)
    start = first - timedelta(days=(first.weekday() - WEEK_START) % 7)
    end = last + timedelta(days=(WEEK_START + 6 - last.weekday()) % 7)
    return start, end


def calendar_days(month: date) -> list[date]:
    start, end = month_grid_range(month)
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def is_same_day(task: Task, day: date) -> bool:
    return task.scheduled_at.date() == day


def active_count(tasks: Iterable[Task]) -> int:
    return sum(1 for task in tasks if not task.completed)


def daily_stats(tasks: Iterable[Task], day: date) -> DayStats:
    on_day = [task for task in tasks if is_same_day(task, day)]
    return DayStats(total=len(on_day), completed=sum(1 for task in on_day if task.completed))


def monthly_cell_stats(stats: Iterable[TaskStat], day: date) -> TaskStat:
    for stat in stats:
        if stat.date == day:
            return stat
    return TaskStat(date=day, total_count=0, un_completed_count=0)


def ordered(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=lambda task: (task.sort_order, task.scheduled_at))


def format_highlight(fragment: str) -> str:
    return fragment.replace("<mark>", '<mark class="highlight">')
