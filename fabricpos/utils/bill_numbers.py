from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from fabricpos.models import Bill


def bill_number_base(prefix: str, day: date) -> str:
    return f"{prefix}{day.strftime('%y%m%d')}"


def get_next_bill_number(db: Session, organization_id: int, prefix: str = "CS", day: Optional[date] = None) -> str:
    """
    Next bill number for the workspace: PREFIX + YYMMDD + three-digit sequence.
    Takes the highest sequence already issued today and adds one.
    """
    base = bill_number_base(prefix, day or date.today())

    numbers = db.query(Bill.bill_number).filter(
        Bill.organization_id == organization_id,
        Bill.bill_number.like(f"{base}%"),
    ).all()

    last_seq = 0
    for (number,) in numbers:
        tail = number[len(base):]
        if tail.isdigit():
            last_seq = max(last_seq, int(tail))

    return f"{base}{last_seq + 1:03d}"
