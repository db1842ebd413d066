from marketplace.repositories.user import UserRepository
from marketplace.repositories.product import ProductRepository
from marketplace.repositories.cart import CartLine, CartRepository
from marketplace.repositories.order import OrderRepository
from marketplace.repositories.transaction import TransactionRepository
