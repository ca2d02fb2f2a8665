import logging
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from seller_ledger.config import settings
from seller_ledger.errors import LedgerError
from seller_ledger.routers import orders, platforms, sales, supplies

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s :: %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Seller Ledger')

app.include_router(sales.router)
app.include_router(orders.router)
app.include_router(platforms.router)
app.include_router(supplies.router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 409:
        logger.warning('%s %s refused: %s', request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={'error': str(exc)})


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
