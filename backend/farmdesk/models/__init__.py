from .accounts import BusinessAccount, User, AccountMember, SessionToken
from .catalog import Customer, Product
from .sales import Sale
from .invoices import AccountSettings, ReusableInvoiceNumber, Invoice, InvoiceItem

__all__ = [
    'BusinessAccount', 'User', 'AccountMember', 'SessionToken',
    'Customer', 'Product',
    'Sale',
    'AccountSettings', 'ReusableInvoiceNumber', 'Invoice', 'InvoiceItem',
]
