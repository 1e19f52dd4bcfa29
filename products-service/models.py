import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Tuple
from pydantic import BaseModel
from exceptions import ProductIdMismatch, ProductNotFound
from schemas import ProductPayload

class Product(BaseModel):
    id: int
    name: str
    price: float

# Données initiales (ids 1 et 2)
SEED_PRODUCTS: List[Tuple[str, float]] = [
    ("Laptop", 1200.00),
    ("Mouse", 25.00),
]


class ProductStore:
    """In-memory product map guarded by a single exclusive lock.

    Every operation, reads included, holds the lock for its whole duration.
    The lock is re-entrant so a caller can keep it across a store call and
    the encoding of the result with ``exclusive()``.
    """

    def __init__(self, seed: Iterable[Tuple[str, float]] = ()):
        self._lock = threading.RLock()
        self._products: Dict[int, Product] = {}
        self._next_id = 1
        for name, price in seed:
            self.create_product(ProductPayload(name=name, price=price))

    @classmethod
    def seeded(cls) -> "ProductStore":
        return cls(SEED_PRODUCTS)

    @contextmanager
    def exclusive(self):
        with self._lock:
            yield self

    def __len__(self) -> int:
        with self._lock:
            return len(self._products)

    def list_products(self) -> List[Product]:
        with self._lock:
            return [p.model_copy() for p in self._products.values()]

    def get_product(self, product_id: int) -> Product:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                raise ProductNotFound(product_id)
            return product.model_copy()

    def create_product(self, payload: ProductPayload) -> Product:
        with self._lock:
            # L'id éventuel du client est écrasé
            product = Product(id=self._next_id, name=payload.name, price=payload.price)
            self._products[product.id] = product
            self._next_id += 1
            return product.model_copy()

    def update_product(self, product_id: int, payload: ProductPayload) -> Product:
        with self._lock:
            if product_id not in self._products:
                raise ProductNotFound(product_id)
            if payload.id and payload.id != product_id:
                raise ProductIdMismatch(product_id, payload.id)
            product = Product(id=product_id, name=payload.name, price=payload.price)
            self._products[product_id] = product
            return product.model_copy()

    def delete_product(self, product_id: int) -> None:
        with self._lock:
            if product_id not in self._products:
                raise ProductNotFound(product_id)
            del self._products[product_id]
