#app/core/revisions.py
"""
Учёт ревизий этапа: бесплатная квота, использованные ревизии и ставка за
каждую ревизию сверх квоты.

N-е отклонение (считая с 1) бесплатно тогда и только тогда, когда
N <= free_revisions. Иначе клиент платит revision_rate.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class RevisionCharge:
    """Результат одного отклонения этапа."""
    rejection_number: int
    was_free: bool
    charge: float
    used_revisions: int
    free_revisions: int

    @property
    def has_free_revisions_left(self) -> bool:
        return self.used_revisions < self.free_revisions


def has_free_revisions_left(used_revisions: int, free_revisions: int) -> bool:
    return (used_revisions or 0) < (free_revisions or 0)


def is_rejection_free(rejection_number: int, free_revisions: int) -> bool:
    if rejection_number < 1:
        raise ValueError("rejection_number is 1-indexed")
    return rejection_number <= (free_revisions or 0)


def rejection_charge(used_revisions: int, free_revisions: int, revision_rate: float) -> float:
    """Сколько будет стоить следующее отклонение."""
    if has_free_revisions_left(used_revisions, free_revisions):
        return 0.0
    return float(revision_rate or 0)


def apply_rejection(used_revisions: int, free_revisions: int, revision_rate: float) -> RevisionCharge:
    """
    Считает следующее отклонение. Счётчик только растёт, ровно на 1.
    """
    used = used_revisions or 0
    free = free_revisions or 0
    number = used + 1
    was_free = is_rejection_free(number, free)
    return RevisionCharge(
        rejection_number=number,
        was_free=was_free,
        charge=0.0 if was_free else float(revision_rate or 0),
        used_revisions=number,
        free_revisions=free,
    )
