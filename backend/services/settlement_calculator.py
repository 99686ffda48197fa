"""
ABC Cours CRM - Settlement Note Calculator
Pure arithmetic over the subject lines of a settlement note (NDR).

  revenue        = Σ hourly_rate × quantity
  salary_to_pay  = Σ professor_salary × quantity
  charges_to_pay = charges × Σ quantity
  margin_amount  = revenue − salary_to_pay − charges_to_pay
  margin_%       = margin_amount / revenue × 100   (0 when revenue is 0)
"""

from typing import Iterable, Mapping, Any, Dict


def _line_value(line: Any, key: str) -> float:
    if isinstance(line, Mapping):
        return float(line.get(key) or 0)
    return float(getattr(line, key, 0) or 0)


def compute_totals(subjects: Iterable[Any], charges: float = 0) -> Dict[str, float]:
    """
    Compute the financial fields of a settlement note.
    Accepts SubjectLine models or plain dicts.
    """
    lines = list(subjects or [])
    charges = float(charges or 0)

    total_hourly_rate = sum(_line_value(l, "hourly_rate") for l in lines)
    total_quantity = sum(_line_value(l, "quantity") for l in lines)
    total_professor_salary = sum(_line_value(l, "professor_salary") for l in lines)

    total_revenue = sum(
        _line_value(l, "hourly_rate") * _line_value(l, "quantity") for l in lines
    )
    salary_to_pay = sum(
        _line_value(l, "professor_salary") * _line_value(l, "quantity") for l in lines
    )
    charges_to_pay = charges * total_quantity
    margin_amount = total_revenue - salary_to_pay - charges_to_pay
    margin_percentage = (margin_amount / total_revenue * 100) if total_revenue > 0 else 0

    return {
        "total_hourly_rate": round(total_hourly_rate, 2),
        "total_quantity": int(total_quantity),
        "total_professor_salary": round(total_professor_salary, 2),
        "total_revenue": round(total_revenue, 2),
        "salary_to_pay": round(salary_to_pay, 2),
        "charges_to_pay": round(charges_to_pay, 2),
        "margin_amount": round(margin_amount, 2),
        "margin_percentage": round(margin_percentage, 2),
    }


def total_amount(note: dict) -> float:
    """Amount billed to the family (Σ rate × quantity)."""
    if note.get("total_revenue") is not None:
        return float(note["total_revenue"])
    return compute_totals(note.get("subjects", []))["total_revenue"]
