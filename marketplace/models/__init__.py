from marketplace.models.user import User, UserRole
from marketplace.models.product import Product
from marketplace.models.cart import CartItem
from marketplace.models.order import Order, OrderStatus
from marketplace.models.transaction import Transaction, TransactionKind, TransactionStatus
