"""
Consent receipt log for the CMP core
Append-only proof of consent, independent from the client-side decision store
"""

import json
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import create_engine, Column, Integer, String, Text
from sqlalchemy.orm import declarative_base, sessionmaker

from .models import ConsentReceipt
from ..constants import Categories
from ..exceptions import ReceiptLogError, ValidationError

logger = structlog.get_logger(__name__)

Base = declarative_base()


class ConsentReceiptDB(Base):
    """SQLAlchemy model for consent receipts"""
    __tablename__ = "consent_receipts"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    timestamp = Column(String, nullable=False, index=True)
    session_id = Column(String, nullable=False, index=True)
    consent_state = Column(Text, nullable=False)  # JSON string
    widget_version = Column(String, nullable=False)
    policy_version = Column(String, nullable=False)
    receipt_metadata = Column(Text)  # JSON string


class ReceiptStorage:
    """Storage adapter for consent receipts"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or "sqlite:///consent_receipts.db"
        self.engine = create_engine(self.database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)

        Base.metadata.create_all(bind=self.engine)

    def _to_db_model(self, receipt: ConsentReceipt) -> ConsentReceiptDB:
        return ConsentReceiptDB(
            id=receipt.id,
            timestamp=receipt.timestamp,
            session_id=receipt.session_id,
            consent_state=json.dumps(receipt.consent_state),
            widget_version=receipt.widget_version,
            policy_version=receipt.policy_version,
            receipt_metadata=json.dumps(receipt.metadata) if receipt.metadata else None,
        )

    def _from_db_model(self, row: ConsentReceiptDB) -> ConsentReceipt:
        metadata = {}
        if row.receipt_metadata:
            try:
                metadata = json.loads(row.receipt_metadata)
            except json.JSONDecodeError:
                logger.warning("Invalid receipt metadata JSON", receipt_id=row.id)

        return ConsentReceipt(
            id=row.id,
            timestamp=row.timestamp,
            session_id=row.session_id,
            consent_state=json.loads(row.consent_state),
            widget_version=row.widget_version,
            policy_version=row.policy_version,
            metadata=metadata,
        )

    def append(self, receipt: ConsentReceipt) -> None:
        """Append a receipt; raises ReceiptLogError on failure"""
        try:
            with self.SessionLocal() as session:
                session.add(self._to_db_model(receipt))
                session.commit()
        except Exception as e:
            logger.error("Failed to store receipt", receipt_id=receipt.id, error=str(e))
            raise ReceiptLogError(str(e), session_id=receipt.session_id) from e

    def all(self) -> List[ConsentReceipt]:
        """Every receipt in append order"""
        with self.SessionLocal() as session:
            rows = session.query(ConsentReceiptDB).order_by(ConsentReceiptDB.seq).all()
            return [self._from_db_model(row) for row in rows]

    def latest_for_session(self, session_id: str) -> Optional[ConsentReceipt]:
        with self.SessionLocal() as session:
            row = (
                session.query(ConsentReceiptDB)
                .filter_by(session_id=session_id)
                .order_by(ConsentReceiptDB.seq.desc())
                .first()
            )
            return self._from_db_model(row) if row else None


class InMemoryReceiptStorage(ReceiptStorage):
    """In-memory receipt storage for testing"""

    def __init__(self):
        self.receipts: List[ConsentReceipt] = []
        self.fail_writes = False

    def append(self, receipt: ConsentReceipt) -> None:
        if self.fail_writes:
            raise ReceiptLogError("receipt storage unavailable", session_id=receipt.session_id)
        self.receipts.append(receipt)

    def all(self) -> List[ConsentReceipt]:
        return list(self.receipts)

    def latest_for_session(self, session_id: str) -> Optional[ConsentReceipt]:
        for receipt in reversed(self.receipts):
            if receipt.session_id == session_id:
                return receipt
        return None


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        stamp = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=UTC)


class ConsentLogger:
    """Receipt sink handed every consent decision"""

    def __init__(self, storage: Optional[ReceiptStorage] = None):
        self.storage = storage or ReceiptStorage()

    def log(self, receipt: ConsentReceipt) -> bool:
        """Append a receipt.

        An empty consent state is rejected with ValidationError; storage
        failures are logged and reported as False.
        """
        if not receipt.consent_state:
            raise ValidationError("Invalid consent state", field="consent_state")

        try:
            self.storage.append(receipt)
        except ReceiptLogError as e:
            logger.error("Failed to log consent", session_id=receipt.session_id, error=e.message)
            return False

        logger.info("Logged consent receipt", receipt_id=receipt.id,
                    policy_version=receipt.policy_version)
        return True

    def get_logs(self, limit: int = 100, offset: int = 0) -> List[ConsentReceipt]:
        """Receipts, most recent first"""
        receipts = list(reversed(self.storage.all()))
        end = offset + limit if limit > 0 else None
        return receipts[offset:end]

    def get_session_consent(self, session_id: str) -> Optional[ConsentReceipt]:
        return self.storage.latest_for_session(session_id)

    def get_stats(self, days: int = 30) -> Dict[str, Any]:
        """Aggregate receipts of the last ``days`` days (0 = all).

        ``accepted_all`` and ``rejected_all`` look only at non-necessary
        categories and need at least one of them; anything else, including
        an empty or necessary-only state, counts as ``customized``.
        """
        cutoff = datetime.now(UTC) - timedelta(days=days) if days > 0 else None

        stats: Dict[str, Any] = {
            "total": 0,
            "by_category": {},
            "by_day": {},
            "accepted_all": 0,
            "rejected_all": 0,
            "customized": 0,
        }

        for receipt in self.storage.all():
            stamp = _parse_timestamp(receipt.timestamp)
            if stamp is None:
                logger.warning("Skipping receipt with bad timestamp", receipt_id=receipt.id)
                continue
            if cutoff is not None and stamp < cutoff:
                continue

            stats["total"] += 1

            optional = []
            for category, accepted in receipt.consent_state.items():
                bucket = stats["by_category"].setdefault(category, {"accepted": 0, "rejected": 0})
                bucket["accepted" if accepted else "rejected"] += 1
                if category != Categories.NECESSARY:
                    optional.append(bool(accepted))

            if optional and all(optional):
                stats["accepted_all"] += 1
            elif optional and not any(optional):
                stats["rejected_all"] += 1
            else:
                stats["customized"] += 1

            day = stamp.strftime("%Y-%m-%d")
            stats["by_day"][day] = stats["by_day"].get(day, 0) + 1

        return stats
