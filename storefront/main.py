# storefront/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from storefront.api.error_handlers import register_exception_handlers
from storefront.api.routers import buy_now, checkout, pricing
from storefront.core.config import settings
from storefront.core.logging import get_logger, setup_logging
from storefront.core.metrics import export_metrics
from storefront.middleware import ObservabilityMiddleware
from storefront.services.session_store import CheckoutSessionStore

setup_logging()
logger = get_logger(__name__)

# --- Metadatos de la API para la documentación ---
TAGS_METADATA = [
    {"name": "pricing", "description": "Cotización de envío, impuestos y totales por moneda."},
    {"name": "checkout", "description": "Sesiones de checkout paso a paso (carrito y compra directa)."},
    {"name": "buy-now", "description": "Intenciones de compra directa de un producto."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Checkout service started",
        extra={"storefront_api_url": settings.STOREFRONT_API_URL, "currencies": settings.supported_currencies},
    )
    yield
    await app.state.session_store.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Motor de precios y pasos del checkout del storefront.\n\n"
        "- **Pricing**: Envío, impuestos y totales con redondeo a centavos.\n"
        "- **Checkout**: Envío, pago, revisión y envío de la orden.\n"
        "- **Buy now**: Compra directa con intención de compra que expira."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Creado fuera del lifespan: ASGITransport no dispara los eventos de arranque.
app.state.session_store = CheckoutSessionStore(redis_url=settings.REDIS_URL)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Ajustar en producción para mayor seguridad
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(pricing.router, prefix=settings.API_V1_STR)
app.include_router(checkout.router, prefix=settings.API_V1_STR)
app.include_router(buy_now.router, prefix=settings.API_V1_STR)


# --- Configuración personalizada de OpenAPI ---
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=TAGS_METADATA,
    )
    openapi_schema["info"]["x-supported-currencies"] = settings.supported_currencies

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


@app.get("/metrics", include_in_schema=False)
def metrics():
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


# --- Endpoint raíz ---
@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}
