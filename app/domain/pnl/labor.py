"""
Labor cost calculation from employees and time punches.

Money is handled in integer cents until the daily totals are built, which
are returned in dollars.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

# Average days per pay period, used to spread salaries over calendar days
DAYS_PER_PAY_PERIOD = {
    "weekly": 7,
    "bi-weekly": 14,
    "semi-monthly": 15.22,
    "monthly": 30.44,
}

DAYS_PER_CONTRACTOR_INTERVAL = {
    "weekly": 7,
    "bi-weekly": 14,
    "monthly": 30.44,
}

MAX_SHIFT_HOURS = 18
DUPLICATE_PUNCH_WINDOW = timedelta(minutes=5)


def date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def deduplicate_punches(punches: list[Any]) -> list[Any]:
    """Collapse runs of the same punch type within 5 minutes, keeping the last one"""
    result = []
    for punch in punches:
        if (
            result
            and result[-1].punch_type == punch.punch_type
            and punch.punch_time - result[-1].punch_time < DUPLICATE_PUNCH_WINDOW
        ):
            result[-1] = punch
        else:
            result.append(punch)
    return result


def _period(start, end, is_break=False) -> dict:
    return {
        "start": start,
        "end": end,
        "hours": (end - start).total_seconds() / 3600,
        "is_break": is_break,
    }


def parse_work_periods(punches: Iterable[Any]) -> list[dict]:
    """
    Pair clock_in/clock_out punches into work periods. A break splits a shift
    and is recorded as an unpaid period; pairs longer than 18 h are dropped
    as a missed clock-out.
    """
    ordered = deduplicate_punches(sorted(punches, key=lambda p: p.punch_time))
    periods = []
    clock_in = None
    break_start = None

    for punch in ordered:
        kind = punch.punch_type
        when = punch.punch_time

        if kind == "clock_in":
            clock_in = when
            break_start = None
        elif kind == "clock_out" and clock_in is not None:
            period = _period(clock_in, when)
            if 0 < period["hours"] <= MAX_SHIFT_HOURS:
                periods.append(period)
            clock_in = None
            break_start = None
        elif kind == "break_start" and clock_in is not None and break_start is None:
            period = _period(clock_in, when)
            if 0 < period["hours"] <= MAX_SHIFT_HOURS:
                periods.append(period)
            break_start = when
        elif kind == "break_end" and break_start is not None:
            periods.append(_period(break_start, when, is_break=True))
            if clock_in is not None:
                clock_in = when
            break_start = None

    return periods


def on_payroll(employee: Any, day: date) -> bool:
    """
    Whether fixed pay (salary, contractor, daily rate) accrues on a day.
    Terminated staff with a termination date accrue up to and including it.
    """
    if employee.status != "active" and not (employee.status == "terminated" and employee.termination_date):
        return False
    if employee.hire_date and day < employee.hire_date:
        return False
    if employee.termination_date and day > employee.termination_date:
        return False
    return True


def daily_salary_cents(employee: Any) -> int:
    days = DAYS_PER_PAY_PERIOD.get(employee.pay_period_type or "")
    if not employee.salary_amount or not days:
        return 0
    return round(employee.salary_amount / days)


def daily_contractor_cents(employee: Any) -> int:
    interval = employee.contractor_payment_interval
    if not employee.contractor_payment_amount or interval == "per-job":
        return 0
    days = DAYS_PER_CONTRACTOR_INTERVAL.get(interval or "")
    if not days:
        return 0
    return round(employee.contractor_payment_amount / days)


def calculate_daily_labor(
    employees: Iterable[Any], punches: Iterable[Any], start: date, end: date
) -> dict[date, dict]:
    """
    Labor cost per calendar day between start and end (inclusive).

    Each value holds hourly_wages, salary_wages, contractor_costs,
    total_labor_cost (dollars) and total_hours.
    """
    days = {
        day: {"hourly": 0, "salary": 0, "contractor": 0, "daily_rate": 0, "hours": 0.0, "worked": set()}
        for day in date_range(start, end)
    }
    employees_by_id = {employee.id: employee for employee in employees}

    punches_by_employee = defaultdict(list)
    for punch in punches:
        punches_by_employee[punch.employee_id].append(punch)

    for employee_id, employee_punches in punches_by_employee.items():
        employee = employees_by_id.get(employee_id)
        if employee is None:
            continue
        for period in parse_work_periods(employee_punches):
            if period["is_break"]:
                continue
            day = days.get(period["start"].date())
            if day is None:
                continue
            day["hours"] += period["hours"]
            day["worked"].add(employee_id)
            if employee.compensation_type == "hourly":
                day["hourly"] += round((employee.hourly_rate or 0) * period["hours"])

    for employee in employees_by_id.values():
        paid_days = [totals for day, totals in days.items() if on_payroll(employee, day)]
        if employee.compensation_type == "salary":
            per_day = daily_salary_cents(employee)
            for day in paid_days:
                day["salary"] += per_day
        elif employee.compensation_type == "contractor":
            per_day = daily_contractor_cents(employee)
            for day in paid_days:
                day["contractor"] += per_day
        elif employee.compensation_type == "daily_rate" and employee.daily_rate_amount:
            for day in paid_days:
                if employee.id in day["worked"]:
                    day["daily_rate"] += employee.daily_rate_amount

    result = {}
    for day, totals in days.items():
        # daily-rate staff are booked with salaried wages
        salary = totals["salary"] + totals["daily_rate"]
        total = totals["hourly"] + salary + totals["contractor"]
        result[day] = {
            "hourly_wages": totals["hourly"] / 100,
            "salary_wages": salary / 100,
            "contractor_costs": totals["contractor"] / 100,
            "total_labor_cost": total / 100,
            "total_hours": round(totals["hours"], 2),
        }
    return result
