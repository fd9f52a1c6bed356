from typing import Optional


def format_invoice_number(prefix: str, sequence: int, width: int = 4) -> str:
    """``("NM", 42) -> "NM 0042"``; sequences wider than ``width`` are kept whole."""
    if sequence < 1:
        raise ValueError(f"Invoice sequence must be positive, got {sequence}")
    return f"{prefix} {sequence:0{width}d}"


def parse_invoice_number(invoice_number: str, prefix: str) -> int:
    head, sep, digits = invoice_number.partition(" ")
    if head != prefix or not sep or not digits.isdigit():
        raise ValueError(f"{invoice_number!r} is not a {prefix} invoice number")
    return int(digits)


def next_invoice_number(last_sequence: Optional[int], prefix: str, width: int = 4) -> str:
    """Number following the highest issued sequence, or the first one."""
    return format_invoice_number(prefix, (last_sequence or 0) + 1, width)
