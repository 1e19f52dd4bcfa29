"""Erreurs métier levées par le ProductStore.

La couche HTTP (main.py) les attrape et les traduit en réponses HTTP.
"""


class ProductNotFound(Exception):
    """The requested product id is not in the store."""

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ProductIdMismatch(Exception):
    """The id in the request body differs from the id in the URL."""

    def __init__(self, path_id: int, body_id: int):
        super().__init__(f"Body id {body_id} does not match URL id {path_id}")
        self.path_id = path_id
        self.body_id = body_id
