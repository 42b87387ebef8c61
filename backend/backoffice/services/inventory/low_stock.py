"""On-demand low stock scan and the decision to alert staff about it."""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import get_settings
from backoffice.core.exceptions import NotificationError, StorageError
from backoffice.core.logging import get_logger
from backoffice.database.models import Ingredient
from backoffice.services.inventory.repository import InventoryRepository
from backoffice.services.notifications.channels import NotificationChannel
from backoffice.services.notifications.templates import NotificationTemplates

logger = get_logger(__name__)


@dataclass
class LowStockReport:
    ingredients: list[Ingredient] = field(default_factory=list)
    notified: bool = False
    channel: Optional[str] = None


class LowStockMonitor:
    """
    Compares active ingredients with their minimum thresholds.

    Stateless: nothing runs in the background, every scan reads the ledger
    quantities as they are now.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[InventoryRepository] = None,
        templates: Optional[NotificationTemplates] = None,
    ):
        self.session = session
        self.repository = repository or InventoryRepository(session)
        self.templates = templates or NotificationTemplates()

    async def scan(self) -> list[Ingredient]:
        """Active ingredients whose quantity is at or below the threshold."""
        ingredients = list(await self.repository.list_low_stock())
        logger.info("Low stock scan completed", low_count=len(ingredients))
        return ingredients

    async def notify(self, channel: NotificationChannel) -> LowStockReport:
        """
        Scan and hand the low stock summary to ``channel``.

        Each alerted ingredient is logged in ``low_stock_notifications``.
        A delivery failure is logged and reported as ``notified=False``;
        nothing is recorded in that case.
        """
        report = LowStockReport(ingredients=await self.scan(), channel=channel.name)
        if not report.ingredients:
            return report
        if not get_settings().notify_low_stock:
            logger.info("Low stock notifications disabled", low_count=len(report.ingredients))
            return report

        try:
            await channel.send(self.templates.render_low_stock(report.ingredients))
        except NotificationError as e:
            logger.warning(
                "Low stock notification not delivered",
                channel=channel.name,
                error=str(e),
            )
            return report

        try:
            await self.repository.add_low_stock_notifications(report.ingredients, channel.name)
            await self.session.commit()
        except StorageError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to record low stock notifications", error=str(e))
            raise StorageError("Failed to record low stock notifications") from e

        report.notified = True
        logger.info(
            "Low stock notification sent",
            channel=channel.name,
            ingredient_count=len(report.ingredients),
        )
        return report
