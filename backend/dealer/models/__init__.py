from .people import Customer, User
from .inventory import StockItem, Vehicle, TradeIn, StockTransfer
from .sales import (
    Sale,
    PaymentInstrument,
    CashPayment,
    InstantTransferPayment,
    DebitCardPayment,
    CreditCardPayment,
    CheckPayment,
    BankFinancingPayment,
    OwnFinancingPayment,
    PromissoryNotePayment,
    ConsortiumPayment,
    TradeVehiclePayment,
    Installment,
)
from .financial import FinancialTransaction

__all__ = [
    'Customer', 'User',
    'StockItem', 'Vehicle', 'TradeIn', 'StockTransfer',
    'Sale', 'PaymentInstrument',
    'CashPayment', 'InstantTransferPayment', 'DebitCardPayment', 'CreditCardPayment',
    'CheckPayment', 'BankFinancingPayment', 'OwnFinancingPayment', 'PromissoryNotePayment',
    'ConsortiumPayment', 'TradeVehiclePayment',
    'Installment',
    'FinancialTransaction',
]
