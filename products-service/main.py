import os
import re
import time
import uuid
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger
from dotenv import load_dotenv
from typing import Any, List
from pydantic import ValidationError
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from exceptions import ProductIdMismatch, ProductNotFound
from models import ProductStore
from schemas import ProductPayload, ProductResponse

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "products-service"

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()
logger.add(
    sink=os.getenv("LOG_FILE", "logs.json"),
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=os.getenv("LOG_LEVEL", "INFO"),
    serialize=True,
    rotation="1 day",
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

PRODUCT_ID_PATTERN = re.compile(r"[+-]?[0-9]+")
# Les ids sont des entiers signés 64 bits
PRODUCT_ID_MIN = -(2 ** 63)
PRODUCT_ID_MAX = 2 ** 63 - 1

app = FastAPI(title="Products Service")
app.state.store = ProductStore.seeded()


# Middleware pour logger les requests avec correlation ID
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Bind trace_id to logger context
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={"method": request.method, "url": str(request.url), "trace_id": trace_id}
        )

        response = await call_next(request)

        latency = time.time() - start_time

        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        logger.info(
            f"Response status: {response.status_code}",
            extra={"status": response.status_code, "latency": latency, "trace_id": trace_id}
        )

        response.headers["X-Trace-ID"] = trace_id
        return response


# Les erreurs sont renvoyées en texte brut, sans corps JSON
@app.exception_handler(StarletteHTTPException)
async def plain_text_http_error(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def get_store(request: Request) -> ProductStore:
    """Dependency returning the store owned by the application."""
    return request.app.state.store


def invalid_product_id(product_id: str) -> HTTPException:
    logger.warning(f"Invalid product id {product_id[:64]!r}")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/{product_id}", error_type="invalid_id").inc()
    return HTTPException(status_code=400, detail="Invalid Product Id")


def parse_product_id(product_id: str) -> int:
    """Parse the trailing path segment; runs before the request body is read."""
    if not PRODUCT_ID_PATTERN.fullmatch(product_id):
        raise invalid_product_id(product_id)
    try:
        value = int(product_id)
    except ValueError:
        # Au-delà de la limite de chiffres de int()
        raise invalid_product_id(product_id)
    if not PRODUCT_ID_MIN <= value <= PRODUCT_ID_MAX:
        raise invalid_product_id(product_id)
    return value


async def decode_payload(request: Request) -> ProductPayload:
    """Decode the request body as a product, whatever its Content-Type.

    A literal ``null`` body decodes to an empty product.
    """
    body = await request.body()
    if body.strip() == b"null":
        return ProductPayload()
    try:
        return ProductPayload.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"Invalid request body on {request.method} {request.url.path}: {e.errors()}")
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="invalid_body").inc()
        raise HTTPException(status_code=400, detail="Invalid request Body")


def respond_with_json(status_code: int, data: Any) -> Response:
    """Serialize ``data`` as JSON, falling back to a 500 if it cannot be encoded."""
    try:
        return JSONResponse(content=data, status_code=status_code)
    except (TypeError, ValueError) as e:
        logger.error(f"Error encoding JSON: {e}")
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="-", error_type="encoding_error").inc()
        return PlainTextResponse("Internal Server Error", status_code=500)


def not_found(product_id: int) -> HTTPException:
    logger.warning(f"Product {product_id} not found")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/{product_id}", error_type="not_found").inc()
    return HTTPException(status_code=404, detail="Product not found")


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


# Handlers synchrones : chaque requête tourne dans un thread du pool,
# l'accès concurrent est sérialisé par le verrou du store.
@app.get("/products", response_model=List[ProductResponse])
def get_products(store: ProductStore = Depends(get_store)):
    logger.info("Fetching all products")
    with store.exclusive():
        products = store.list_products()
        return respond_with_json(200, [p.model_dump() for p in products])


@app.post("/products", status_code=201, response_model=ProductResponse)
def create_product(
    product: ProductPayload = Depends(decode_payload),
    store: ProductStore = Depends(get_store),
):
    logger.info(f"Creating product: {product.name}")
    with store.exclusive():
        new_product = store.create_product(product)
        logger.info(f"Product created with ID {new_product.id}")
        return respond_with_json(201, new_product.model_dump())


@app.get("/products/{product_id:path}", response_model=ProductResponse)
def get_product(product_id: int = Depends(parse_product_id), store: ProductStore = Depends(get_store)):
    logger.info(f"Fetching product {product_id}")
    with store.exclusive():
        try:
            product = store.get_product(product_id)
        except ProductNotFound:
            raise not_found(product_id)
        return respond_with_json(200, product.model_dump())


@app.put("/products/{product_id:path}", response_model=ProductResponse)
def update_product(
    product_id: int = Depends(parse_product_id),
    product: ProductPayload = Depends(decode_payload),
    store: ProductStore = Depends(get_store),
):
    logger.info(f"Updating product {product_id}")
    with store.exclusive():
        try:
            updated = store.update_product(product_id, product)
        except ProductNotFound:
            raise not_found(product_id)
        except ProductIdMismatch as e:
            logger.warning(str(e))
            ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/{product_id}", error_type="id_mismatch").inc()
            raise HTTPException(status_code=400, detail="ID in the URL and the Body do not match")
        return respond_with_json(200, updated.model_dump())


@app.delete("/products/{product_id:path}", status_code=204)
def delete_product(product_id: int = Depends(parse_product_id), store: ProductStore = Depends(get_store)):
    logger.info(f"Deleting product {product_id}")
    try:
        store.delete_product(product_id)
    except ProductNotFound:
        raise not_found(product_id)
    logger.info(f"Product {product_id} deleted")
    return Response(status_code=204)


if __name__ == "__main__":
    port = int(os.getenv("PORT", 8080))
    logger.info(f"Starting Products Service on port {port}")
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)
