"""P&L domain schemas"""

from datetime import date

from pydantic import BaseModel


class DailyPnLResponse(BaseModel):
    date: date
    net_revenue: float
    food_cost: float
    labor_cost: float
    prime_cost: float
    gross_profit: float
    food_cost_percentage: float
    labor_cost_percentage: float
    prime_cost_percentage: float

    class Config:
        from_attributes = True
