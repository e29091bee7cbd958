from decimal import Decimal
from pathlib import Path

from fastapi.templating import Jinja2Templates

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def format_money(value, symbol: str = "") -> str:
    amount = Decimal(str(value or 0))
    return f"{symbol}{amount:,.2f}"


def format_quantity(value) -> str:
    """2.50 -> 2.5, 10.00 -> 10"""
    return f"{Decimal(str(value or 0)).normalize():f}"


templates.env.filters["money"] = format_money
templates.env.filters["qty"] = format_quantity


def render(name: str, **context) -> str:
    return templates.get_template(name).render(**context)
