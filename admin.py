import asyncio
from datetime import timedelta

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from auth import require_admin
from database import collection, utcnow
from errors import ok
from inventory import current_stock

router = APIRouter(prefix="/admin", tags=["admin"])


def _count(name: str, filter_dict: dict = None) -> int:
    return collection(name).count_documents(filter_dict or {})


@router.get("/stats")
async def dashboard_stats(_: dict = Depends(require_admin)):
    week_ago = {"created_at": {"$gte": utcnow() - timedelta(days=7)}}
    (products, available, enquiries, enquiries_week,
     orders, orders_week, stock) = await asyncio.gather(
        run_in_threadpool(_count, "product"),
        run_in_threadpool(_count, "product", {"availability": True}),
        run_in_threadpool(_count, "enquiry"),
        run_in_threadpool(_count, "enquiry", week_ago),
        run_in_threadpool(_count, "order"),
        run_in_threadpool(_count, "order", week_ago),
        run_in_threadpool(current_stock),
    )
    return ok({
        "products": {"total": products, "available": available},
        "enquiries": {"total": enquiries, "this_week": enquiries_week},
        "orders": {"total": orders, "this_week": orders_week},
        "inventory": {"total_bricks": stock["total_bricks"], "available_trolleys": stock["available_trolleys"]},
    })


@router.get("/ping")
def ping(user: dict = Depends(require_admin)):
    return ok(user, "Admin access granted")
