from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from mangum import Mangum
from config import ENVIRONMENT
from services.catalog import ListingCache
from utils.errors import MarketplaceError
import logging

from routers.auth.auth import router as auth_router
from routers.users.users import router as users_router
from routers.products.products import router as products_router
from routers.orders.orders import router as orders_router
from routers.stock_orders.stock_orders import router as stock_orders_router
from routers.payments.payments import router as payments_router
from routers.notifications.notifications import router as notifications_router
from routers.reviews.reviews import router as reviews_router

logging.basicConfig(level=logging.DEBUG if ENVIRONMENT == "dev" else logging.INFO)
logger = logging.getLogger(__name__)

IS_PRODUCTION = ENVIRONMENT == "prod"

app = FastAPI(
    title="LiveMart Connect API",
    description="Marketplace API connecting customers, retailers and wholesalers: catalog, retail orders, stock replenishment, payments and notifications.",
    version="1.0.0",
    root_path="/Prod" if IS_PRODUCTION else "",
    docs_url="/apidocs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    servers=[
        {"url": "https://your-aws-api.execute-api.region.amazonaws.com/Prod", "description": "Production Server"},
        {"url": "http://localhost:8000", "description": "Local Development Server"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Listing cache kept current by POST /products/changes
app.state.listing_cache = ListingCache()


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(stock_orders_router)
app.include_router(payments_router)
app.include_router(notifications_router)
app.include_router(reviews_router)


@app.get("/docs", include_in_schema=False)
async def api_documentation(request: Request):
    openapi_url = "/Prod/openapi.json" if IS_PRODUCTION else "/openapi.json"

    return HTMLResponse(
        f"""
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1, shrink-to-fit=no">
    <title>LiveMart Connect API DOCS</title>

    <script src="https://unpkg.com/@stoplight/elements/web-components.min.js"></script>
    <link rel="stylesheet" href="https://unpkg.com/@stoplight/elements/styles.min.css">
  </head>
  <body>

    <elements-api
      apiDescriptionUrl="{openapi_url}"
      router="hash"
      theme="dark"
    />

  </body>
</html>"""
    )


@app.get("/health")
async def health():
    return {"status": "ok", "environment": ENVIRONMENT, "cached_listings": len(app.state.listing_cache)}


@app.get("/", response_class=HTMLResponse)
def home():
    """Landing page linking the API documentation"""
    return """
    <html>
      <head>
        <title>LiveMart Connect API</title>
        <style>
          body { font-family: Arial, sans-serif; margin: 40px; background-color: #f8f9fa; }
          h1 { color: #333; }
          ul { list-style-type: none; padding: 0; }
          li { margin: 10px 0; }
          a { color: #0066cc; text-decoration: none; }
        </style>
      </head>
      <body>
        <h1>Welcome to LiveMart Connect API</h1>
        <hr>
        <ul>
          <li><a href="/docs">Spotlight API Documentation</a></li>
          <li><a href="/redoc">Redoc API Documentation</a></li>
          <li><a href="/apidocs">Swagger API Documentation</a></li>
          <li><a href="/openapi.json">OpenAPI Specification</a></li>
        </ul>
      </body>
    </html>
    """


handler = Mangum(app)
