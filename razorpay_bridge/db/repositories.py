"""
Repositories for the local Razorpay bridge tables.

Every repository wraps one table and works on the session of the current
unit of work, so the objects a service loads stay attached until the
request commits.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from razorpay_bridge.db.models import (
    ActivityLog,
    Customer,
    Order,
    OrderTransaction,
    Subscription,
    VendorPlan,
)
from razorpay_bridge.domain.status import TransactionStatus, TransactionType
from razorpay_bridge.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)


def with_retry(
    max_attempts: int = 3,
    delay: float = 0.2,
    backoff: float = 2.0,
    exceptions: tuple = (OperationalError,),
) -> Callable:
    """
    Retry a repository read on transient database errors (SQLite
    "database is locked", dropped connections), then raise DatabaseException.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt == max_attempts:
                        break
                    wait = delay * backoff ** (attempt - 1)
                    logger.warning(f"{func.__name__} failed ({e}), retry {attempt}/{max_attempts - 1} in {wait:.1f}s")
                    await asyncio.sleep(wait)

            logger.error(f"{func.__name__} failed after {max_attempts} attempts")

            raise DatabaseException(
                message=f"Database operation {func.__name__} failed: {last_exception}",
                operation=func.__name__,
            ) from last_exception

        return wrapper

    return decorator


def guarded_write(func: Callable) -> Callable:
    """
    Wrap a flushing repository write. A failed flush leaves the session
    needing a rollback, so the write is rolled back and raised as
    DatabaseException instead of being retried.
    """

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except OperationalError as e:
            logger.error(f"{func.__name__} failed ({e}), rolling back")
            await self.session.rollback()
            raise DatabaseException(
                message=f"Database operation {func.__name__} failed: {e}",
                operation=func.__name__,
            ) from e

    return wrapper


def log_operation(operation_name: Optional[str] = None) -> Callable:
    """Debug-log a repository write, and log failures as errors."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            op_name = operation_name or f"{self.__class__.__name__}.{func.__name__}"
            try:
                result = await func(self, *args, **kwargs)
            except Exception as e:
                logger.error(f"{op_name} failed: {e}")
                raise
            logger.debug(f"{op_name} ok")
            return result

        return wrapper

    return decorator


class BaseRepository:
    """Common session handling for all repositories."""

    model: Any = None

    def __init__(self, session: AsyncSession):
        self.session = session

    @with_retry()
    async def get(self, record_id: Any):
        if record_id in (None, ""):
            return None
        return await self.session.get(self.model, int(record_id))

    async def _first(self, statement):
        result = await self.session.execute(statement.limit(1))
        return result.scalars().first()

    async def _all(self, statement) -> List[Any]:
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    @log_operation()
    @guarded_write
    async def add(self, record):
        """Persist a new record and load its generated id."""
        self.session.add(record)
        await self.session.flush()
        return record

    @guarded_write
    async def save(self, record):
        """Flush pending changes of an attached record."""
        await self.session.flush()
        return record


class CustomerRepository(BaseRepository):
    model = Customer


class OrderRepository(BaseRepository):
    model = Order

    @with_retry()
    async def get_by_uuid(self, order_uuid: str) -> Optional[Order]:
        if not order_uuid:
            return None
        return await self._first(select(Order).where(Order.uuid == order_uuid))


class TransactionRepository(BaseRepository):
    model = OrderTransaction

    @with_retry()
    async def get_by_uuid(self, transaction_uuid: str) -> Optional[OrderTransaction]:
        if not transaction_uuid:
            return None
        return await self._first(select(OrderTransaction).where(OrderTransaction.uuid == transaction_uuid))

    @with_retry()
    async def get_by_vendor_charge_id(self, vendor_charge_id: str) -> Optional[OrderTransaction]:
        return await self._charge_by_vendor_id(vendor_charge_id)

    async def _charge_by_vendor_id(self, vendor_charge_id: str) -> Optional[OrderTransaction]:
        if not vendor_charge_id:
            return None
        return await self._first(
            select(OrderTransaction)
            .where(OrderTransaction.vendor_charge_id == vendor_charge_id)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
            .order_by(OrderTransaction.id.desc())
        )

    @with_retry()
    async def get_by_payment_id(self, payment_id: str) -> Optional[OrderTransaction]:
        """Charge confirmed with, or recorded against, the given Razorpay payment id."""
        if not payment_id:
            return None
        transaction = await self._charge_by_vendor_id(payment_id)
        if transaction is not None:
            return transaction
        charges = await self._all(
            select(OrderTransaction)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
            .order_by(OrderTransaction.id.desc())
        )
        for charge in charges:
            if charge.get_meta("razorpay_payment_id") == payment_id:
                return charge
        return None

    @with_retry()
    async def get_by_vendor_order_id(self, razorpay_order_id: str) -> Optional[OrderTransaction]:
        """Charge created for a Razorpay order, before or after confirmation."""
        if not razorpay_order_id:
            return None
        transaction = await self._charge_by_vendor_id(razorpay_order_id)
        if transaction is not None:
            return transaction
        charges = await self._all(
            select(OrderTransaction)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
            .order_by(OrderTransaction.id.desc())
        )
        for charge in charges:
            if charge.get_meta("razorpay_order_id") == razorpay_order_id:
                return charge
        return None

    @with_retry()
    async def get_pending_charge_for_subscription(self, subscription_id: int) -> Optional[OrderTransaction]:
        """Latest pending charge of a subscription that has no vendor id yet."""
        return await self._first(
            select(OrderTransaction)
            .where(OrderTransaction.subscription_id == subscription_id)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
            .where(OrderTransaction.status == TransactionStatus.PENDING)
            .where(OrderTransaction.vendor_charge_id == "")
            .order_by(OrderTransaction.id.desc())
        )

    @with_retry()
    async def get_charges_for_subscription(self, subscription_id: int) -> List[OrderTransaction]:
        return await self._all(
            select(OrderTransaction)
            .where(OrderTransaction.subscription_id == subscription_id)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
        )

    @with_retry()
    async def get_refund_by_vendor_id(self, refund_id: str) -> Optional[OrderTransaction]:
        if not refund_id:
            return None
        return await self._first(
            select(OrderTransaction)
            .where(OrderTransaction.transaction_type == TransactionType.REFUND)
            .where(OrderTransaction.vendor_charge_id == refund_id)
        )

    @with_retry()
    async def get_refunds_for_order(self, order_id: int) -> List[OrderTransaction]:
        return await self._all(
            select(OrderTransaction)
            .where(OrderTransaction.order_id == order_id)
            .where(OrderTransaction.transaction_type == TransactionType.REFUND)
            .order_by(OrderTransaction.id)
        )

    @with_retry()
    async def get_latest_charge_for_order(self, order_id: int) -> Optional[OrderTransaction]:
        return await self._first(
            select(OrderTransaction)
            .where(OrderTransaction.order_id == order_id)
            .where(OrderTransaction.transaction_type == TransactionType.CHARGE)
            .order_by(OrderTransaction.id.desc())
        )


class SubscriptionRepository(BaseRepository):
    model = Subscription

    @with_retry()
    async def get_by_parent_order(self, order_id: int) -> Optional[Subscription]:
        return await self._first(
            select(Subscription).where(Subscription.parent_order_id == order_id).order_by(Subscription.id)
        )

    @with_retry()
    async def get_by_vendor_id(self, vendor_subscription_id: str) -> Optional[Subscription]:
        if not vendor_subscription_id:
            return None
        return await self._first(
            select(Subscription).where(Subscription.vendor_subscription_id == vendor_subscription_id)
        )


class PlanRepository(BaseRepository):
    model = VendorPlan

    @with_retry()
    async def get_plan_id(self, plan_key: str) -> Optional[str]:
        plan = await self._first(select(VendorPlan).where(VendorPlan.plan_key == plan_key))
        return plan.vendor_plan_id if plan else None

    @log_operation()
    @guarded_write
    async def put_plan_id(self, plan_key: str, vendor_plan_id: str) -> None:
        plan = await self._first(select(VendorPlan).where(VendorPlan.plan_key == plan_key))
        if plan:
            plan.vendor_plan_id = vendor_plan_id
        else:
            self.session.add(VendorPlan(plan_key=plan_key, vendor_plan_id=vendor_plan_id))
        await self.session.flush()


class ActivityLogRepository(BaseRepository):
    """
    Activity entries of the current unit of work.

    Entries are also kept in `recorded` so they can be written again with
    `restore()` when the request session rolls back: a rejected webhook or
    a failed confirmation must still leave its audit trail.
    """

    model = ActivityLog

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.recorded: List[Dict[str, Any]] = []

    async def add_log(
        self,
        title: str,
        content: str = "",
        level: str = "info",
        module_name: Optional[str] = None,
        module_id: Optional[int] = None,
    ) -> ActivityLog:
        """Record an activity entry, usually scoped to an order."""
        values = {
            "title": title,
            "content": content,
            "level": level,
            "module_name": module_name,
            "module_id": module_id,
        }
        self.recorded.append(values)
        return await self.add(ActivityLog(**values))

    @log_operation("ActivityLogRepository.restore")
    @guarded_write
    async def restore(self, entries: List[Dict[str, Any]]) -> None:
        """Write entries recorded by a session that was rolled back."""
        self.session.add_all([ActivityLog(**values) for values in entries])
        await self.session.flush()

    @with_retry()
    async def for_module(self, module_name: str, module_id: int) -> List[ActivityLog]:
        return await self._all(
            select(ActivityLog)
            .where(ActivityLog.module_name == module_name)
            .where(ActivityLog.module_id == module_id)
            .order_by(ActivityLog.id)
        )


class Repositories:
    """All repositories sharing one session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.customers = CustomerRepository(session)
        self.orders = OrderRepository(session)
        self.transactions = TransactionRepository(session)
        self.subscriptions = SubscriptionRepository(session)
        self.plans = PlanRepository(session)
        self.activity = ActivityLogRepository(session)
