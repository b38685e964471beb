"""
Loan Repository Module

Persistence boundary for loans. The core never holds process-wide state;
callers inject a LoanRepository, and loans cross it as JSON-safe dicts.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, date
from typing import Any, Dict, List, Optional
import json
import threading

from .decimal_math import to_decimal
from .exceptions import InvalidArgumentError, LoanNotFoundError
from .models import Arrears, Loan, RatePeriod, ScheduleRow


def _datetime_or_none(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _date_or_none(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def rate_period_to_dict(period: RatePeriod) -> Dict[str, Any]:
    return {
        'id': period.id,
        'loan_id': period.loan_id,
        'rate': str(period.rate),
        'start_date': period.start_date.isoformat(),
        'end_date': period.end_date.isoformat() if period.end_date else None,
        'created_at': period.created_at.isoformat(),
        'updated_at': period.updated_at.isoformat() if period.updated_at else None,
    }


def rate_period_from_dict(data: Dict[str, Any]) -> RatePeriod:
    return RatePeriod(
        id=data['id'],
        loan_id=data.get('loan_id'),
        rate=to_decimal(data['rate']),
        start_date=date.fromisoformat(data['start_date']),
        end_date=_date_or_none(data.get('end_date')),
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=_datetime_or_none(data.get('updated_at')),
    )


def arrears_to_dict(arrears: Arrears) -> Dict[str, Any]:
    return {
        'id': arrears.id,
        'loan_id': arrears.loan_id,
        'principal_amount': str(arrears.principal_amount),
        'interest_amount': str(arrears.interest_amount),
        'penalty_amount': str(arrears.penalty_amount),
        'total_amount': str(arrears.total_amount),
        'days_overdue': arrears.days_overdue,
        'created_at': arrears.created_at.isoformat(),
        'updated_at': arrears.updated_at.isoformat() if arrears.updated_at else None,
    }


def arrears_from_dict(data: Dict[str, Any]) -> Arrears:
    # total_amount is derived, never read back
    return Arrears(
        id=data['id'],
        loan_id=data.get('loan_id'),
        principal_amount=to_decimal(data['principal_amount']),
        interest_amount=to_decimal(data['interest_amount']),
        penalty_amount=to_decimal(data['penalty_amount']),
        days_overdue=data['days_overdue'],
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=_datetime_or_none(data.get('updated_at')),
    )


def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    """Convert loan to a JSON-safe dictionary"""
    return {
        'id': loan.id,
        'principal': str(loan.principal),
        'annual_rate': str(loan.annual_rate),
        'months': loan.months,
        'start_date': loan.start_date.isoformat(),
        'balloon_amount': str(loan.balloon_amount) if loan.balloon_amount is not None else None,
        'current_balance': str(loan.current_balance),
        'payments_made': loan.payments_made,
        'rate_periods': [rate_period_to_dict(p) for p in loan.rate_periods],
        'arrears': [arrears_to_dict(a) for a in loan.arrears],
        'schedule': [row.to_dict() for row in loan.schedule],
        'created_at': loan.created_at.isoformat(),
        'updated_at': loan.updated_at.isoformat() if loan.updated_at else None,
    }


def loan_from_dict(data: Dict[str, Any]) -> Loan:
    """Convert dictionary to loan"""
    balloon = data.get('balloon_amount')
    return Loan(
        id=data.get('id'),
        principal=to_decimal(data['principal']),
        annual_rate=to_decimal(data['annual_rate']),
        months=data['months'],
        start_date=date.fromisoformat(data['start_date']),
        balloon_amount=to_decimal(balloon) if balloon is not None else None,
        current_balance=to_decimal(data['current_balance']),
        payments_made=data.get('payments_made', 0),
        rate_periods=[rate_period_from_dict(p) for p in data.get('rate_periods', [])],
        arrears=[arrears_from_dict(a) for a in data.get('arrears', [])],
        schedule=[ScheduleRow.from_dict(row) for row in data.get('schedule', [])],
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=_datetime_or_none(data.get('updated_at')),
    )


class LoanRepository(ABC):
    """Abstract loan persistence"""

    @abstractmethod
    def save(self, loan: Loan) -> None:
        """Insert or replace a loan; the loan must have an id"""
        pass

    @abstractmethod
    def get(self, loan_id: str) -> Loan:
        """Load a loan, raising LoanNotFoundError if absent"""
        pass

    @abstractmethod
    def exists(self, loan_id: str) -> bool:
        pass

    @abstractmethod
    def list_ids(self) -> List[str]:
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryLoanRepository(LoanRepository):
    """In-memory repository implementation for testing and embedding"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._snapshot: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = threading.RLock()

    def save(self, loan: Loan) -> None:
        if not loan.id:
            raise InvalidArgumentError("Loan must have an id before it can be saved")
        with self._lock:
            # Deep copy to prevent external mutation
            self._data[loan.id] = json.loads(json.dumps(loan_to_dict(loan), default=str))

    def get(self, loan_id: str) -> Loan:
        with self._lock:
            record = self._data.get(loan_id)
            if record is None:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            return loan_from_dict(json.loads(json.dumps(record)))

    def exists(self, loan_id: str) -> bool:
        with self._lock:
            return loan_id in self._data

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def delete(self, loan_id: str) -> bool:
        with self._lock:
            return self._data.pop(loan_id, None) is not None

    def begin_transaction(self) -> None:
        with self._lock:
            self._snapshot = json.loads(json.dumps(self._data))

    def commit(self) -> None:
        with self._lock:
            self._snapshot = None

    def rollback(self) -> None:
        with self._lock:
            if self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None
