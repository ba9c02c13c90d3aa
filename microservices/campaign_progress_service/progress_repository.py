"""
Campaign Progress Service Data Repository

Data access layer - PostgreSQL (Async)

Reads campaigns from ``goals`` (rows with record_type = 'campaign'), links
from ``policy_campaign_links`` and transactions from ``policies``. Writes
back only the campaign's current derived state.
"""

import asyncio
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper
from .criteria import load_criteria
from .models import (
    Campaign,
    CampaignKind,
    CampaignProgressUpdate,
    CampaignStatus,
    Link,
    LinkedTransaction,
    TargetType,
    Transaction,
    normalize_target_type,
)
from .protocols import UpstreamUnavailableError

logger = logging.getLogger(__name__)

# Driver failures that mean "the database did not answer"
DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return datetime.fromisoformat(str(value))


def _to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None:
        return default
    return value if isinstance(value, Decimal) else Decimal(str(value))


class CampaignProgressRepository:
    """Campaign progress data repository - PostgreSQL (Async)"""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        db: Optional[PostgresClientWrapper] = None,
    ):
        # Use config_manager for service discovery
        if config is None:
            config = ConfigManager("campaign_progress_service")

        self.db = db or PostgresClientWrapper(service_name=config.service_name)
        self.schema = config.settings.infra.postgres_schema

        # Table names
        self.campaigns_table = "goals"
        self.links_table = "policy_campaign_links"
        self.policies_table = "policies"

    async def initialize(self):
        """Initialize database connection"""
        try:
            await self.db.connect()
        except DRIVER_ERRORS as e:
            raise UpstreamUnavailableError(f"PostgreSQL unavailable: {e}") from e
        logger.info("Campaign progress repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Campaign progress repository database connection closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        try:
            async with self.db:
                result = await self.db.health_check()
                return bool(result and result.get("healthy"))
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    # ====================
    # Reads
    # ====================

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID"""
        query = f'''
            SELECT id, user_id, title, target, type, campaign_type, criteria,
                   status, acceptance_status, accepted_at, end_date, is_active,
                   current_value, progress_percentage, achieved_at, achieved_value,
                   created_at, updated_at
            FROM {self.schema}.{self.campaigns_table}
            WHERE id = $1 AND record_type = 'campaign'
        '''
        try:
            async with self.db:
                row = await self.db.query_row(query, [campaign_id])
        except DRIVER_ERRORS as e:
            logger.error(f"Error getting campaign {campaign_id}: {e}")
            raise UpstreamUnavailableError(f"Failed to load campaign {campaign_id}: {e}") from e

        return self._row_to_campaign(row) if row else None

    async def list_active_links(self, campaign_id: str) -> List[LinkedTransaction]:
        """Active links of a campaign joined to their policies"""
        query = f'''
            SELECT l.policy_id, l.campaign_id, l.is_active, l.linked_at,
                   p.id AS p_id, p.policy_number, p.type AS p_type,
                   p.premium_value, p.contract_type, p.registration_date,
                   p.created_at AS p_created_at, p.user_id AS p_user_id
            FROM {self.schema}.{self.links_table} l
            LEFT JOIN {self.schema}.{self.policies_table} p ON p.id = l.policy_id
            WHERE l.campaign_id = $1 AND l.is_active = true
            ORDER BY l.linked_at
        '''
        try:
            async with self.db:
                rows = await self.db.query(query, [campaign_id])
        except DRIVER_ERRORS as e:
            logger.error(f"Error listing links for campaign {campaign_id}: {e}")
            raise UpstreamUnavailableError(f"Failed to load links for {campaign_id}: {e}") from e

        return [self._row_to_linked(row) for row in rows]

    async def list_campaign_ids_for_transaction(self, transaction_id: str) -> List[str]:
        """Campaigns a policy is or was linked to (removed links included)"""
        query = f'''
            SELECT DISTINCT campaign_id
            FROM {self.schema}.{self.links_table}
            WHERE policy_id = $1
        '''
        try:
            async with self.db:
                rows = await self.db.query(query, [transaction_id])
        except DRIVER_ERRORS as e:
            logger.error(f"Error resolving campaigns for policy {transaction_id}: {e}")
            raise UpstreamUnavailableError(f"Failed to resolve campaigns for {transaction_id}: {e}") from e

        return [str(row["campaign_id"]) for row in rows]

    async def list_campaign_ids(
        self,
        user_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[str]:
        """IDs of active (not deactivated) campaigns matching the filter"""
        conditions = ["record_type = 'campaign'", "is_active = true"]
        params: List[Any] = []

        if user_id:
            params.append(user_id)
            conditions.append(f"user_id = ${len(params)}")
        if statuses:
            params.append([s.value for s in statuses])
            conditions.append(f"status = ANY(${len(params)}::text[])")

        query = f'''
            SELECT id FROM {self.schema}.{self.campaigns_table}
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at
        '''
        try:
            async with self.db:
                rows = await self.db.query(query, params)
        except DRIVER_ERRORS as e:
            logger.error(f"Error listing campaigns: {e}")
            raise UpstreamUnavailableError(f"Failed to list campaigns: {e}") from e

        return [str(row["id"]) for row in rows]

    # ====================
    # Writes
    # ====================

    async def update_campaign_progress(
        self, campaign_id: str, update: CampaignProgressUpdate
    ) -> bool:
        """Write derived progress (and status transitions) onto a campaign"""
        assignments = ["current_value = $2", "progress_percentage = $3", "updated_at = $4"]
        params: List[Any] = [
            campaign_id,
            update.current_value,
            update.progress_percentage,
            datetime.now(timezone.utc),
        ]

        if update.status is not None:
            params.append(update.status.value)
            assignments.append(f"status = ${len(params)}")
        if update.clear_achievement:
            assignments.append("achieved_at = NULL")
            assignments.append("achieved_value = NULL")
        elif update.achieved_at is not None:
            params.append(update.achieved_at)
            assignments.append(f"achieved_at = ${len(params)}")
            params.append(update.achieved_value)
            assignments.append(f"achieved_value = ${len(params)}")

        query = f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET {", ".join(assignments)}
            WHERE id = $1 AND record_type = 'campaign'
        '''
        try:
            async with self.db:
                status = await self.db.execute(query, params)
        except DRIVER_ERRORS as e:
            logger.error(f"Error updating progress for campaign {campaign_id}: {e}")
            raise UpstreamUnavailableError(f"Failed to update campaign {campaign_id}: {e}") from e

        return status.endswith(" 1")

    # ====================
    # Row mapping
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> Campaign:
        campaign_id = str(row["id"])
        kind = CampaignKind.COMPOSITE if row.get("campaign_type") == "composite" else CampaignKind.SIMPLE

        criteria, criteria_error = (None, None)
        if kind == CampaignKind.COMPOSITE:
            criteria, criteria_error = load_criteria(row.get("criteria"), campaign_id)

        target_type = normalize_target_type(row.get("type"))
        if target_type not in (TargetType.VALUE.value, TargetType.QUANTITY.value):
            # Growth-style campaigns are measured by value
            target_type = TargetType.VALUE.value

        raw_status = row.get("status")
        if row.get("acceptance_status") == "pending":
            status = CampaignStatus.PENDING
        else:
            try:
                status = CampaignStatus(raw_status)
            except ValueError:
                # Paused and other legacy statuses are left untouched by reconciliation
                status = CampaignStatus.PENDING

        return Campaign(
            campaign_id=campaign_id,
            user_id=str(row["user_id"]) if row.get("user_id") else None,
            title=row.get("title"),
            kind=kind,
            target_type=target_type,
            target=_to_decimal(row.get("target")),
            criteria=criteria,
            criteria_error=criteria_error,
            status=status,
            is_active=bool(row.get("is_active", True)),
            accepted_at=_to_datetime(row.get("accepted_at")),
            end_date=_to_datetime(row.get("end_date")),
            current_value=_to_decimal(row.get("current_value")),
            progress_percentage=_to_decimal(row.get("progress_percentage")),
            achieved_at=_to_datetime(row.get("achieved_at")),
            achieved_value=_to_decimal(row.get("achieved_value"), None),
            created_at=_to_datetime(row.get("created_at")),
            updated_at=_to_datetime(row.get("updated_at")),
        )

    def _row_to_linked(self, row: Dict[str, Any]) -> LinkedTransaction:
        link = Link(
            campaign_id=str(row["campaign_id"]),
            transaction_id=str(row["policy_id"]),
            is_active=bool(row.get("is_active", True)),
            linked_at=_to_datetime(row.get("linked_at")),
        )

        if row.get("p_id") is None:
            return LinkedTransaction(link=link, transaction=None)

        registered_at = (
            _to_datetime(row.get("registration_date"))
            or _to_datetime(row.get("p_created_at"))
            or link.linked_at
        )
        if registered_at is None:
            logger.warning(f"Policy {row['p_id']} has no registration date, treating it as unresolved")
            return LinkedTransaction(link=link, transaction=None)

        transaction = Transaction(
            transaction_id=str(row["p_id"]),
            category=row.get("p_type") or "",
            value=_to_decimal(row.get("premium_value")),
            contract_type=row.get("contract_type"),
            registered_at=registered_at,
            policy_number=row.get("policy_number"),
            user_id=str(row["p_user_id"]) if row.get("p_user_id") else None,
        )
        return LinkedTransaction(link=link, transaction=transaction)


__all__ = ["CampaignProgressRepository"]
