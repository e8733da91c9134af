"""FastAPI providers wiring the payment services to the request's DB session."""

from fastapi import Depends
from sqlalchemy.orm import Session

from core.clock import Clock, system_clock
from core.settings import Settings, get_settings
from db.repository import OrderRepository, PaymentRepository
from db.session import get_db
from payments.express_checkout import ExpressCheckout
from payments.ipn import IPNHandler, IPNValidator
from payments.nvp_client import NVPClient
from payments.reconciler import PaymentReconciler


def get_clock() -> Clock:
    return system_clock


def get_order_repository(db: Session = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db)


def get_payment_repository(db: Session = Depends(get_db)) -> PaymentRepository:
    return PaymentRepository(db)


def get_nvp_client(settings: Settings = Depends(get_settings)) -> NVPClient:
    return NVPClient(settings)


def get_express_checkout(
    client: NVPClient = Depends(get_nvp_client),
    orders: OrderRepository = Depends(get_order_repository),
    payments: PaymentRepository = Depends(get_payment_repository),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ExpressCheckout:
    return ExpressCheckout(client, orders, payments, settings, clock=clock)


def get_reconciler(
    client: NVPClient = Depends(get_nvp_client),
    payments: PaymentRepository = Depends(get_payment_repository),
    clock: Clock = Depends(get_clock),
) -> PaymentReconciler:
    return PaymentReconciler(client, payments, clock=clock)


def get_ipn_handler(
    payments: PaymentRepository = Depends(get_payment_repository),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> IPNHandler:
    return IPNHandler(IPNValidator(settings), payments, clock=clock)
