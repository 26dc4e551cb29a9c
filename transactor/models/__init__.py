from transactor.models.demo import Guest, Product, User

__all__ = [
    "Guest",
    "Product",
    "User",
]
