import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

from catalog import category_router, product_router, size_router, subcategory_router
from carts import router as cart_router
from config import Settings
from database import connect, get_db
from errors import AppError
from extras import banner_router, message_router, wishlist_router
from invoices import InvoiceRenderer
from logging_setup import setup_logging
from mailer import Mailer, template_environment
from orders import router as order_router
from payments import PaymentGateway
from users import router as user_router

log = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Settings, db: Database | None = None, gateway: PaymentGateway | None = None,
               mailer: Mailer | None = None, renderer: InvoiceRenderer | None = None) -> FastAPI:
    setup_logging(settings.log_level)

    app = FastAPI(title="Safar Store API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # process-wide collaborators, built once and handed to requests via app.state
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.gateway = gateway or PaymentGateway(settings)
    app.state.templates = mailer.templates if mailer else template_environment()
    app.state.mailer = mailer or Mailer(settings, app.state.templates)
    app.state.renderer = renderer or InvoiceRenderer()

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in (user_router, category_router, subcategory_router, size_router, product_router,
                   cart_router, order_router, banner_router, wishlist_router, message_router):
        app.include_router(router)

    @app.get("/")
    def read_root():
        return {"name": "Safar Store API", "status": "ok"}

    @app.get("/test")
    def test_database(db: Database = Depends(get_db)):
        info = {"backend": "running", "database": "disconnected"}
        try:
            info["collections"] = db.list_collection_names()[:10]
            info["database"] = "connected"
        except Exception as e:
            log.warning("Database check failed: %s", e)
            info["error"] = str(e)
        return info

    return app


app = create_app(Settings.from_env())


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
