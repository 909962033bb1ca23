"""Statistical anomaly detection over a client's transaction history."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from recon_engine.config import DEFAULT_ANOMALY_CONFIG, AnomalyConfig
from recon_engine.models.recon import (
    AlertKind,
    AlertSeverity,
    AlertState,
    AnomalyAlert,
    BankTransaction,
)
from recon_engine.services.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Result of an anomaly detection run."""

    client_id: str
    alerts_created: int = 0
    transactions_analyzed: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "client_id": self.client_id,
            "alerts_created": self.alerts_created,
            "transactions_analyzed": self.transactions_analyzed,
        }


@dataclass
class AlertStats:
    """Alert counts by state and, for open alerts, by severity."""

    total: int
    open: int
    high: int
    medium: int
    low: int
    resolved: int
    dismissed: int


@dataclass
class CounterpartyStats:
    """Running totals for one counterparty key."""

    count: int = 0
    total_amount: int = 0


def counterparty_key(transaction: BankTransaction) -> str:
    """Grouping key: normalized description, falling back to the raw one."""
    if transaction.normalized_description is not None:
        return transaction.normalized_description
    return transaction.description


def format_amount(amount: int | Decimal) -> str:
    """Thousands-separated amount in minor units."""
    return f"{Decimal(amount).quantize(Decimal('1'), rounding=ROUND_HALF_UP):,}"


class AnomalyDetector:
    """Runs anomaly rules over all of a client's transactions.

    Rules:
    1. Unusual amount - more than 3x the counterparty average (5x is high severity)
    2. Possible duplicate - same absolute amount and description within 3 days

    Each (client, kind, transaction) gets at most one alert, so re-running on
    unchanged data creates nothing new.
    """

    def __init__(self, store: RecordStore, config: AnomalyConfig = DEFAULT_ANOMALY_CONFIG):
        self.store = store
        self.config = config

    async def detect(self, client_id: str) -> DetectionResult:
        """Run all rules for a client.

        Args:
            client_id: Client whose full transaction history is analyzed

        Returns:
            DetectionResult with the number of alerts created
        """
        async with self.store.atomic():
            transactions = await self.store.list_transactions(client_id)
            existing = await self.store.existing_alert_keys(client_id)
            result = DetectionResult(client_id=client_id, transactions_analyzed=len(transactions))

            candidates = self._unusual_amount_alerts(client_id, transactions)
            candidates.extend(self._duplicate_alerts(client_id, transactions))

            for alert in candidates:
                key = (alert.kind, alert.transaction_id)
                if key in existing:
                    continue
                existing.add(key)
                self.store.add(alert)
                result.alerts_created += 1

            await self.store.flush()

        logger.info(
            f"Anomaly detection for client {client_id}: {result.transactions_analyzed} "
            f"transactions analyzed, {result.alerts_created} alerts created"
        )
        return result

    def _unusual_amount_alerts(
        self, client_id: str, transactions: list[BankTransaction]
    ) -> list[AnomalyAlert]:
        """Amounts far above the average for the same counterparty.

        The average includes the transaction being tested.
        """
        stats: dict[str, CounterpartyStats] = defaultdict(CounterpartyStats)
        for t in transactions:
            group = stats[counterparty_key(t)]
            group.count += 1
            group.total_amount += abs(t.amount)

        alerts = []
        for t in transactions:
            key = counterparty_key(t)
            group = stats[key]
            if group.count < self.config.min_group_size_for_average:
                continue
            if group.count < self.config.min_group_size_for_alert:
                continue

            amount = abs(t.amount)
            # amount > k * (total / count), compared without division
            scaled = Decimal(amount) * group.count
            if scaled <= self.config.unusual_multiplier * group.total_amount:
                continue

            average = Decimal(group.total_amount) / group.count
            if scaled > self.config.high_severity_multiplier * group.total_amount:
                severity = AlertSeverity.HIGH
            else:
                severity = AlertSeverity.MEDIUM

            ratio = (Decimal(amount) / average).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            alerts.append(
                AnomalyAlert(
                    client_id=client_id,
                    kind=AlertKind.UNUSUAL_AMOUNT.value,
                    severity=severity.value,
                    title=f"Unusual amount: {key}",
                    description=(
                        f"Transaction of {format_amount(amount)} is {ratio}x the average "
                        f"({format_amount(average)})"
                    ),
                    state=AlertState.OPEN.value,
                    transaction_id=t.id,
                    reference_amount=int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
                    detected_amount=amount,
                )
            )

        return alerts

    def _duplicate_alerts(
        self, client_id: str, transactions: list[BankTransaction]
    ) -> list[AnomalyAlert]:
        """Same absolute amount and description within the duplicate window.

        The alert is raised against the later transaction of each pair.
        """
        ordered = sorted(transactions, key=lambda t: t.date)
        alerts = []

        for i, first in enumerate(ordered):
            for second in ordered[i + 1 :]:
                days_apart = (second.date - first.date).days
                # Sorted by date: everything further is outside the window too
                if days_apart > self.config.duplicate_window_days:
                    break

                if (
                    abs(first.amount) == abs(second.amount)
                    and first.description == second.description
                    and first.id != second.id
                ):
                    alerts.append(
                        AnomalyAlert(
                            client_id=client_id,
                            kind=AlertKind.POSSIBLE_DUPLICATE.value,
                            severity=AlertSeverity.MEDIUM.value,
                            title=f"Possible duplicate: {first.description}",
                            description=(
                                f"Two transactions of {format_amount(abs(first.amount))} "
                                f"{days_apart} day(s) apart"
                            ),
                            state=AlertState.OPEN.value,
                            transaction_id=second.id,
                            reference_amount=abs(first.amount),
                            detected_amount=abs(second.amount),
                            extra={
                                "original_transaction_id": first.id,
                                "days_apart": days_apart,
                            },
                        )
                    )

        return alerts

    # Review actions
    async def review_alert(self, alert_id: int) -> AnomalyAlert:
        """Mark an alert as reviewed."""
        async with self.store.atomic():
            alert = await self.store.get_alert(alert_id)
            alert.state = AlertState.REVIEWED.value
        return alert

    async def dismiss_alert(
        self, alert_id: int, notes: str | None = None, user_id: str | None = None
    ) -> AnomalyAlert:
        """Dismiss an alert as a false positive."""
        return await self._close_alert(alert_id, AlertState.DISMISSED, notes, user_id)

    async def resolve_alert(
        self, alert_id: int, notes: str | None = None, user_id: str | None = None
    ) -> AnomalyAlert:
        """Resolve an alert."""
        return await self._close_alert(alert_id, AlertState.RESOLVED, notes, user_id)

    async def _close_alert(
        self,
        alert_id: int,
        state: AlertState,
        notes: str | None,
        user_id: str | None,
    ) -> AnomalyAlert:
        async with self.store.atomic():
            alert = await self.store.get_alert(alert_id)
            alert.state = state.value
            alert.resolution_notes = notes
            alert.resolved_by = user_id
            alert.resolved_at = datetime.now(UTC)

        logger.info(f"Alert {alert_id} {state.value}")
        return alert

    async def list_alerts(
        self,
        client_id: str | None = None,
        state: str | None = None,
        severity: str | None = None,
        limit: int | None = None,
    ) -> list[AnomalyAlert]:
        return await self.store.list_alerts(client_id, state, severity, limit)

    async def alert_stats(self, client_id: str | None = None) -> AlertStats:
        """Counts across all alerts, optionally for one client."""
        alerts = await self.store.list_alerts(client_id)
        open_alerts = [a for a in alerts if a.state == AlertState.OPEN.value]

        return AlertStats(
            total=len(alerts),
            open=len(open_alerts),
            high=sum(1 for a in open_alerts if a.severity == AlertSeverity.HIGH.value),
            medium=sum(1 for a in open_alerts if a.severity == AlertSeverity.MEDIUM.value),
            low=sum(1 for a in open_alerts if a.severity == AlertSeverity.LOW.value),
            resolved=sum(1 for a in alerts if a.state == AlertState.RESOLVED.value),
            dismissed=sum(1 for a in alerts if a.state == AlertState.DISMISSED.value),
        )
