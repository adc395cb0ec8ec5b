"""In-process ledger of payment requests and the daily request numbering."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Iterator, List, Optional, Union

from .dates import to_utc, utc_now
from .records import PaymentRequest, RequestStatus

logger = logging.getLogger(__name__)

REQUEST_NUMBER_PREFIX = "PR"


class Ledger:
    """Insertion-ordered collection of payment requests for the process lifetime.

    ``lock`` is reentrant so a caller can hold it across a numbering read and
    the following :meth:`append`.
    """

    def __init__(self) -> None:
        self._records: List[PaymentRequest] = []
        self.lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PaymentRequest]:
        return iter(list(self._records))

    def append(self, record: PaymentRequest) -> PaymentRequest:
        with self.lock:
            self._records.append(record)
        return record

    def all(self) -> List[PaymentRequest]:
        return self._records

    def find_by_id(self, request_id: str) -> Optional[PaymentRequest]:
        with self.lock:
            for record in self._records:
                if record.id == request_id:
                    return record
        return None

    def count_issued_on(self, day: date) -> int:
        with self.lock:
            return sum(1 for record in self._records if to_utc(record.issue_date).date() == day)

    def update_status(
        self,
        request_id: str,
        status: Union[RequestStatus, str],
    ) -> Optional[PaymentRequest]:
        with self.lock:
            for index, record in enumerate(self._records):
                if record.id != request_id:
                    continue
                new_status = RequestStatus(status)
                updated = replace(
                    record,
                    status=new_status,
                    updated_at=max(utc_now(), record.updated_at),
                )
                self._records[index] = updated
                logger.info(
                    "Payment request %s status %s -> %s",
                    record.request_number,
                    record.status.value,
                    new_status.value,
                )
                return updated
        return None

    def delete(self, request_id: str) -> bool:
        with self.lock:
            for index, record in enumerate(self._records):
                if record.id == request_id:
                    del self._records[index]
                    logger.info("Deleted payment request %s", record.request_number)
                    return True
        return False

    def clear(self) -> None:
        with self.lock:
            self._records.clear()


def next_request_number(ledger: Ledger, now: Optional[datetime] = None) -> str:
    """Return ``PR-YYYYMMDD-NNN`` for ``now`` (UTC calendar day).

    ``NNN`` is one more than the number of ledger records issued that day.
    """
    day = to_utc(now or utc_now()).date()
    sequence = ledger.count_issued_on(day) + 1
    return f"{REQUEST_NUMBER_PREFIX}-{day:%Y%m%d}-{sequence:03d}"
