"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import ConcurrentUpdateError, PaymentAlreadyExistsException
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            method=PaymentMethod(model.method),
            status=PaymentStatus(model.status),
            amount=model.amount,
            provider=model.provider,
            remote_order_id=model.remote_order_id,
            remote_charge_id=model.remote_charge_id,
            checkout_url=model.checkout_url,
            pix_qr_code=model.pix_qr_code,
            pix_qr_code_url=model.pix_qr_code_url,
            pix_expires_at=model.pix_expires_at,
            installments=model.installments,
            transaction_id=model.transaction_id,
            payment_method_used=model.payment_method_used,
            paid_at=model.paid_at,
            metadata=dict(model.extra_metadata or {}),
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _mutable_columns(entity: Payment) -> dict:
        """可被更新的列（id/order_id/created_at 不变）"""
        return {
            "method": entity.method.value,
            "status": entity.status.value,
            "amount": entity.amount,
            "provider": entity.provider,
            "remote_order_id": entity.remote_order_id,
            "remote_charge_id": entity.remote_charge_id,
            "checkout_url": entity.checkout_url,
            "pix_qr_code": entity.pix_qr_code,
            "pix_qr_code_url": entity.pix_qr_code_url,
            "pix_expires_at": entity.pix_expires_at,
            "installments": entity.installments,
            "transaction_id": entity.transaction_id,
            "payment_method_used": entity.payment_method_used,
            "paid_at": entity.paid_at,
            "extra_metadata": entity.metadata or {},
        }

    async def _find_live(self, order_id: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status != PaymentStatus.FAILED.value,
            )
        )
        return result.scalars().first()

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        if await self._find_live(payment.order_id) is not None:
            logger.warning("payment_create_conflict", order_id=payment.order_id)
            raise PaymentAlreadyExistsException(payment.order_id)

        db_payment = PaymentModel(
            id=payment.id or str(uuid.uuid4()),
            order_id=payment.order_id,
            version=0,
            created_at=payment.created_at or datetime.now(timezone.utc),
            updated_at=payment.updated_at or datetime.now(timezone.utc),
            **self._mutable_columns(payment),
        )
        try:
            self.session.add(db_payment)
            await self.session.flush()
        except IntegrityError as e:
            # 并发创建被部分唯一索引拦截；外层 UoW 负责回滚
            logger.warning("payment_create_conflict", order_id=payment.order_id, error=str(e.orig))
            raise PaymentAlreadyExistsException(payment.order_id) from e

        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            provider=db_payment.provider,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """根据订单ID获取当前支付：非失败优先，其次最近创建"""
        failed_last = case((PaymentModel.status == PaymentStatus.FAILED.value, 1), else_=0)
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(failed_last, PaymentModel.created_at.desc())
            .limit(1)
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def update(self, payment: Payment, *, expected_version: int) -> Payment:
        """条件更新：仅当版本号未变时写入，并递增版本号"""
        now = datetime.now(timezone.utc)
        values = self._mutable_columns(payment)
        values["version"] = expected_version + 1
        values["updated_at"] = now
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment.id, PaymentModel.version == expected_version)
            .values({getattr(PaymentModel, key): value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "payment_update_conflict",
                payment_id=payment.id,
                expected_version=expected_version,
            )
            raise ConcurrentUpdateError("Payment", str(payment.id))

        payment.version = expected_version + 1
        payment.updated_at = now
        return payment
